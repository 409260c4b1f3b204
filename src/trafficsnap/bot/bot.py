import asyncio
import logging
from typing import Sequence

from telegram import Update
from telegram.ext import ApplicationBuilder, CommandHandler, ContextTypes, MessageHandler, filters

from ..core.config import settings
from ..core.db import SessionLocal
from ..core.errors import MappingRequired, NoPendingRequest, NoVideoData, TrafficEngineError
from ..core.logging_config import configure_logging
from ..schemas import REQUIRED_COLUMNS, ColumnMapping
from ..services.engine import build_engine
from ..services.lifecycle import SnapshotRequest, VersionLifecycleCoordinator

logger = logging.getLogger(__name__)


# telegram message limit is 4096 characters
def chunk_text(text, limit=4096):
    out = []
    while len(text) > limit:
        cut = text.rfind("\n", 0, limit)
        if cut == -1:
            cut = limit
        out.append(text[:cut])
        text = text[cut:]
    if text:
        out.append(text)
    return out


class TelegramSnapshotPrompt:
    """Upload prompt shown in a Telegram chat."""

    def __init__(self, bot, chat_id: int):
        self.bot = bot
        self.chat_id = chat_id

    async def _send(self, text: str) -> None:
        for part in chunk_text(text):
            await self.bot.send_message(chat_id=self.chat_id, text=part)

    async def show(self, request: SnapshotRequest) -> None:
        if request.is_for_create:
            action = f"before creating v.{request.version}"
        else:
            action = f"before restoring v.{request.version}"
        await self._send(
            f"Upload the suggested traffic CSV of video {request.video.id} {action}, or /skip."
        )

    async def request_mapping(self, headers: Sequence[str], missing: Sequence[str]) -> None:
        lines = [f"{i}: {h}" for i, h in enumerate(headers)]
        await self._send(
            "Could not recognise the columns: "
            + ", ".join(missing)
            + "\n"
            + "\n".join(lines)
            + "\nSend /mapping with the column number of "
            + ", ".join(c.value for c in REQUIRED_COLUMNS)
            + " (optionally channel_id), e.g. /mapping 0 1 2 3 4 5 6 7"
        )

    async def toast(self, message: str, error: bool = False) -> None:
        await self._send(f"Error: {message}" if error else message)

    async def close(self) -> None:
        return None


def _engine(context: ContextTypes.DEFAULT_TYPE):
    engine = context.bot_data.get("engine")
    if engine is None:
        engine = build_engine(SessionLocal())
        context.bot_data["engine"] = engine
    return engine


def _coordinator(update: Update, context: ContextTypes.DEFAULT_TYPE) -> VersionLifecycleCoordinator:
    coordinator = context.chat_data.get("coordinator")
    if coordinator is None:
        prompt = TelegramSnapshotPrompt(context.bot, update.effective_chat.id)
        coordinator = _engine(context).coordinator(prompt)
        context.chat_data["coordinator"] = coordinator
    return coordinator


def _parse_args(context: ContextTypes.DEFAULT_TYPE):
    args = context.args or []
    if len(args) < 2 or not args[1].isdigit():
        return None, None
    return args[0], int(args[1])


async def _report(update: Update, pending) -> None:
    snapshot_id = await pending
    if snapshot_id:
        await update.message.reply_text(f"snapshot {snapshot_id}")
    else:
        await update.message.reply_text("no snapshot taken")


async def _start_request(update: Update, context: ContextTypes.DEFAULT_TYPE, restore: bool) -> None:
    video_id, version = _parse_args(context)
    if video_id is None:
        command = "restore" if restore else "newversion"
        await update.message.reply_text(f"usage: /{command} <video_id> <version>")
        return
    video = _engine(context).history.get_video_context(video_id)
    if video is None:
        await update.message.reply_text(f"video {video_id} not found")
        return

    coordinator = _coordinator(update, context)
    if coordinator.pending is not None:
        await update.message.reply_text("a snapshot request is already pending, upload a CSV or /skip")
        return
    if restore:
        pending = coordinator.request_snapshot_for_restore(version, video)
    else:
        pending = coordinator.request_snapshot_for_new_version(version, video)
    # resolved later by an upload or /skip
    context.chat_data["task"] = asyncio.create_task(_report(update, pending))
    await asyncio.sleep(0)


async def newversion(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _start_request(update, context, restore=False)


async def restore(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _start_request(update, context, restore=True)


async def skip(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    try:
        await _coordinator(update, context).on_skip()
    except NoPendingRequest:
        await update.message.reply_text("nothing to skip")
        return
    context.chat_data.pop("pending_file", None)
    await _settle(context)


async def _settle(context: ContextTypes.DEFAULT_TYPE) -> None:
    task = context.chat_data.pop("task", None)
    if task is not None:
        await task


async def _submit(update: Update, context: ContextTypes.DEFAULT_TYPE, data: bytes, mapping=None) -> None:
    coordinator = _coordinator(update, context)
    try:
        await coordinator.on_upload(data, mapping)
    except NoPendingRequest:
        await update.message.reply_text("no snapshot was requested, use /newversion or /restore first")
        return
    except MappingRequired:
        context.chat_data["pending_file"] = data
        return
    except NoVideoData:
        return
    context.chat_data.pop("pending_file", None)
    await _settle(context)


async def upload(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    document = update.message.document
    tg_file = await document.get_file()
    data = bytes(await tg_file.download_as_bytearray())
    logger.info("received %s (%d bytes) in chat %s", document.file_name, len(data), update.effective_chat.id)
    await _submit(update, context, data)


async def mapping(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    data = context.chat_data.get("pending_file")
    if data is None:
        await update.message.reply_text("upload a CSV first")
        return
    args = context.args or []
    if len(args) < len(REQUIRED_COLUMNS) or not all(a.lstrip("-").isdigit() for a in args):
        await update.message.reply_text("usage: /mapping <8 or 9 column numbers>")
        return
    columns = [c.value for c in REQUIRED_COLUMNS] + ["channel_id"]
    manual = ColumnMapping(**dict(zip(columns, (int(a) for a in args))))
    await _submit(update, context, data, manual)


async def repair(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    args = context.args or []
    if not args:
        await update.message.reply_text("usage: /repair <video_id> [snapshot_id]")
        return
    video = _engine(context).history.get_video_context(args[0])
    if video is None:
        await update.message.reply_text(f"video {args[0]} not found")
        return
    snapshot_id = args[1] if len(args) > 1 else None
    try:
        result = _coordinator(update, context).repair_missing_metadata(
            video, settings.youtube_api_key, snapshot_id
        )
    except TrafficEngineError as e:
        await update.message.reply_text(f"repair failed: {e}")
        return
    if result.snapshot_id is None:
        await update.message.reply_text("no metadata to repair")
        return
    await update.message.reply_text(
        f"repaired {result.fetched} videos in snapshot {result.snapshot_id} "
        f"(~{result.estimated_quota} quota units)"
    )


def build_app(token: str):
    app = ApplicationBuilder().token(token).build()
    app.add_handler(CommandHandler("newversion", newversion))
    app.add_handler(CommandHandler("restore", restore))
    app.add_handler(CommandHandler("skip", skip))
    app.add_handler(CommandHandler("mapping", mapping))
    app.add_handler(CommandHandler("repair", repair))
    app.add_handler(MessageHandler(filters.Document.ALL, upload))
    return app


def main():
    configure_logging(settings.log_level)
    build_app(settings.telegram_bot_token).run_polling()


if __name__ == "__main__":
    main()
