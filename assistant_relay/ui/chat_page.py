"""NiceGUI chat interface with SSE streaming support."""

import logging

import httpx
from nicegui import events, ui

from assistant_relay.client.api import ApiClient
from assistant_relay.client.consumer import StreamConsumer, StreamOutcome
from assistant_relay.client.conversation import ConversationStore, message_from_stored
from assistant_relay.models.schemas import (
    FileAttachment,
    Message,
    MessageRole,
    MessageType,
)
from assistant_relay.parsing.extractor import MAX_FILE_SIZE
from assistant_relay.upstream.intent import format_attached_file, parse_attached_file

logger = logging.getLogger(__name__)

DEFAULT_THREAD_NAME = "New chat"
THREAD_NAME_LENGTH = 40

CUSTOM_CSS = """
<style>
    body { background: #f5f5f5; min-height: 100vh; }

    .app-container {
        background: white;
        border-radius: 12px;
        box-shadow: 0 2px 8px rgba(0, 0, 0, 0.1);
        overflow: hidden;
    }

    .header { background: linear-gradient(135deg, #0f766e 0%, #1e3a8a 100%); }

    .thread-active { background: #e0f2f1; }

    .message-user {
        background: #1e3a8a;
        color: white;
        border-radius: 18px 18px 4px 18px;
    }

    .message-assistant {
        background: #f3f4f6;
        color: #1f2937;
        border-radius: 18px 18px 18px 4px;
    }

    .typing-dot {
        width: 8px; height: 8px;
        background: #0f766e;
        border-radius: 50%;
        animation: bounce 1.4s infinite ease-in-out;
    }
    .typing-dot:nth-child(2) { animation-delay: 0.2s; }
    .typing-dot:nth-child(3) { animation-delay: 0.4s; }

    @keyframes bounce {
        0%, 60%, 100% { transform: translateY(0); }
        30% { transform: translateY(-6px); }
    }

    .message-assistant pre { margin: 0.5rem 0; }
    .message-assistant p { margin: 0; }
</style>
"""

# Module-level singleton instance
_api_client: ApiClient | None = None


def get_api_client() -> ApiClient:
    """Get or create the API client shared by every page."""
    global _api_client
    if _api_client is None:
        _api_client = ApiClient(timeout=120.0)
    return _api_client


class PendingFile:
    """File picked in the composer but not sent yet."""

    def __init__(self) -> None:
        self.name: str | None = None
        self.mime_type: str = "application/octet-stream"
        self.data: bytes = b""

    @property
    def attached(self) -> bool:
        return self.name is not None

    def clear(self) -> None:
        self.name = None
        self.mime_type = "application/octet-stream"
        self.data = b""


@ui.page("/")
async def chat_page() -> None:
    """Main chat page."""
    ui.add_head_html(CUSTOM_CSS)

    api = get_api_client()
    conversation = ConversationStore()
    consumer = StreamConsumer(conversation, api)
    pending = PendingFile()
    state: dict[str, str | None] = {"thread_id": None}
    reply_views: dict[str, ui.markdown] = {}

    threads_container: ui.column
    messages_container: ui.column
    input_field: ui.textarea
    file_chip: ui.row
    file_label: ui.label
    upload: ui.upload
    detailed_switch: ui.switch
    send_btn: ui.button
    stop_btn: ui.button

    def render_typing() -> None:
        with ui.element("div").classes("message-assistant px-4 py-3"), ui.row().classes("gap-1"):
            for _ in range(3):
                ui.element("div").classes("typing-dot")

    def render_message(msg: Message) -> None:
        is_user = msg.role is MessageRole.USER
        align = "justify-end" if is_user else "justify-start"
        bubble = "message-user" if is_user else "message-assistant"

        with ui.row().classes(f"w-full {align}"), ui.column().classes("max-w-[75%] gap-1"):
            if not is_user and not msg.content:
                render_typing()
                return
            with ui.element("div").classes(f"px-4 py-3 {bubble}"):
                attached = parse_attached_file(msg.content) if is_user else None
                if attached:
                    with ui.row().classes("items-center gap-1 text-xs opacity-80"):
                        ui.icon("description")
                        ui.label(attached.name)
                    ui.label(attached.query).classes("text-sm whitespace-pre-wrap")
                elif is_user:
                    ui.label(msg.content).classes("text-sm whitespace-pre-wrap")
                else:
                    reply_views[msg.id] = ui.markdown(msg.content).classes("text-sm")
                    if msg.type is MessageType.IMAGE and msg.image_url:
                        ui.image(msg.image_url).classes("w-64 rounded-lg mt-2")
            ui.label(msg.timestamp.strftime("%I:%M %p")).classes(
                f"text-[10px] text-gray-400 {'self-end' if is_user else 'self-start'}"
            )

    def refresh_messages() -> None:
        reply_views.clear()
        messages_container.clear()
        thread_id = state["thread_id"]
        messages = conversation.messages(thread_id) if thread_id else []
        with messages_container:
            if not messages:
                with ui.column().classes("w-full h-64 items-center justify-center gap-3"):
                    ui.icon("forum").classes("text-5xl text-gray-300")
                    ui.label("Start a conversation").classes("text-lg text-gray-400")
            for msg in messages:
                render_message(msg)

    def set_streaming(streaming: bool) -> None:
        send_btn.set_visibility(not streaming)
        stop_btn.set_visibility(streaming)

    async def refresh_threads() -> None:
        try:
            threads = await api.list_threads()
        except httpx.HTTPError as e:
            ui.notify(f"Failed to load threads: {e}", type="negative")
            return

        threads_container.clear()
        with threads_container:
            for thread in threads:
                active = "thread-active" if thread.id == state["thread_id"] else ""
                with ui.row().classes(f"w-full items-center no-wrap rounded px-2 {active}"):
                    ui.button(
                        thread.name,
                        on_click=lambda t=thread.id: select_thread(t),
                    ).props("flat no-caps align=left").classes("flex-grow text-left truncate")
                    ui.button(
                        icon="delete",
                        on_click=lambda t=thread.id: delete_thread(t),
                    ).props("flat round dense size=sm color=grey")

    async def select_thread(thread_id: str) -> None:
        if consumer.streaming:
            ui.notify("Wait for the current reply or stop it first", type="warning")
            return
        try:
            stored = await api.list_messages(thread_id)
        except httpx.HTTPError as e:
            ui.notify(f"Failed to load messages: {e}", type="negative")
            return
        conversation.load(thread_id, [message_from_stored(m) for m in stored])
        state["thread_id"] = thread_id
        refresh_messages()
        await refresh_threads()

    async def new_thread() -> str | None:
        try:
            thread = await api.create_thread(DEFAULT_THREAD_NAME)
        except httpx.HTTPError as e:
            ui.notify(f"Failed to create thread: {e}", type="negative")
            return None
        conversation.load(thread.id, [])
        state["thread_id"] = thread.id
        refresh_messages()
        await refresh_threads()
        return thread.id

    async def delete_thread(thread_id: str) -> None:
        if consumer.streaming and thread_id == state["thread_id"]:
            ui.notify("Stop the current reply before deleting this thread", type="warning")
            return
        try:
            await api.delete_thread(thread_id)
        except httpx.HTTPError as e:
            ui.notify(f"Failed to delete thread: {e}", type="negative")
            return
        conversation.clear(thread_id)
        if state["thread_id"] == thread_id:
            state["thread_id"] = None
            refresh_messages()
        await refresh_threads()
        ui.notify("Thread deleted", type="info")

    async def handle_upload(e: events.UploadEventArguments) -> None:
        data = await e.file.read()
        upload.reset()
        if len(data) > MAX_FILE_SIZE:
            ui.notify("File too large. Please select a file smaller than 10MB", type="negative")
            return
        pending.name = e.file.name
        pending.mime_type = e.file.content_type or "application/octet-stream"
        pending.data = data
        file_label.set_text(pending.name)
        file_chip.set_visibility(True)

    def remove_file() -> None:
        pending.clear()
        file_chip.set_visibility(False)

    async def build_attachment(query: str) -> tuple[str, FileAttachment]:
        body = ""
        try:
            body = (await api.read_file(pending.name, pending.data, pending.mime_type)).text
        except httpx.HTTPError as e:
            logger.warning(f"Could not read attached file {pending.name}: {e}")
            ui.notify(f"Could not read {pending.name}; sending without its text", type="warning")
        attachment = FileAttachment(
            name=pending.name,
            mime_type=pending.mime_type,
            size_bytes=len(pending.data),
        )
        return format_attached_file(pending.name, body, query), attachment

    async def send_message() -> None:
        text = input_field.value.strip()
        if (not text and not pending.attached) or consumer.streaming:
            return

        thread_id = state["thread_id"] or await new_thread()
        if thread_id is None:
            return
        first_message = not conversation.messages(thread_id)

        attachment = None
        content = text
        if pending.attached:
            content, attachment = await build_attachment(text)
            remove_file()
        input_field.value = ""

        def on_update(placeholder: Message) -> None:
            view = reply_views.get(placeholder.id)
            if view is None:
                refresh_messages()
            else:
                view.set_content(placeholder.content)

        def on_error(error: str) -> None:
            ui.notify(f"Failed to get AI response: {error}", type="negative")

        set_streaming(True)
        try:
            result = await consumer.send(
                thread_id,
                content,
                attachment=attachment,
                detailed=detailed_switch.value,
                persist=True,
                on_update=on_update,
                on_error=on_error,
            )
        finally:
            set_streaming(False)

        refresh_messages()
        if result.outcome is StreamOutcome.CANCELLED:
            ui.notify("Response stopped", type="info")

        if first_message:
            name = (text or (attachment.name if attachment else "")) or DEFAULT_THREAD_NAME
            try:
                await api.rename_thread(thread_id, name[:THREAD_NAME_LENGTH])
            except httpx.HTTPError as e:
                logger.warning(f"Failed to rename thread {thread_id}: {e}")
            await refresh_threads()

    def stop_streaming() -> None:
        if consumer.cancel():
            logger.info("Reply stopped by user")

    # === UI Layout ===
    with ui.row().classes("w-full min-h-screen p-4 md:p-8 no-wrap gap-4"):
        # Sidebar
        with ui.column().classes("w-64 app-container p-3 gap-2").style(
            "height: calc(100vh - 4rem)"
        ):
            ui.button("New chat", icon="add", on_click=new_thread).props(
                "unelevated color=teal no-caps"
            ).classes("w-full")
            with ui.scroll_area().classes("flex-grow w-full"):
                threads_container = ui.column().classes("w-full gap-1")

        # Chat
        with ui.column().classes("flex-grow app-container").style("height: calc(100vh - 4rem)"):
            with ui.row().classes("w-full header px-5 py-4 items-center justify-between"):
                with ui.row().classes("items-center gap-3"):
                    ui.icon("smart_toy").classes("text-white text-3xl")
                    ui.label("Assistant").classes("text-lg font-semibold text-white")
                detailed_switch = ui.switch("Detailed", value=True).props(
                    "color=white keep-color"
                ).classes("text-white")

            with (
                ui.scroll_area().classes("flex-grow w-full bg-gray-50"),
                ui.column().classes("w-full p-5"),
            ):
                messages_container = ui.column().classes("w-full gap-4")

            with ui.column().classes("w-full p-4 gap-2 bg-white border-t"):
                with ui.row().classes("items-center gap-2") as file_chip:
                    ui.icon("attach_file").classes("text-gray-500")
                    file_label = ui.label().classes("text-sm text-gray-600")
                    ui.button(icon="close", on_click=remove_file).props("flat round dense size=sm")
                file_chip.set_visibility(False)

                with ui.row().classes("w-full gap-3 items-end no-wrap"):
                    upload = ui.upload(on_upload=handle_upload, auto_upload=True).props(
                        "accept=.pdf,.txt,.csv,.md flat"
                    ).classes("w-40")
                    input_field = (
                        ui.textarea(placeholder="Type a message...")
                        .props("autogrow outlined dense rows=1")
                        .classes("flex-grow")
                        .on("keydown.enter.prevent", send_message)
                    )
                    send_btn = ui.button(icon="send", on_click=send_message).props(
                        "round unelevated color=teal"
                    )
                    stop_btn = ui.button(icon="stop", on_click=stop_streaming).props(
                        "round unelevated color=red"
                    )
                    stop_btn.set_visibility(False)

    refresh_messages()
    await refresh_threads()

