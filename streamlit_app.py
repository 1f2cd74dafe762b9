"""Chat Memory Assistant - Streamlit App with Chat UI."""

import base64
import os
from typing import List

import streamlit as st
from config.settings import Settings
from llm.base_client import Attachment
from memory.models import MessageRole
from orchestrator import ChatOrchestrator


st.set_page_config(
    page_title="Chat Memory Assistant",
    page_icon="💬",
    layout="wide"
)

# Initialize session state
if "orchestrator" not in st.session_state:
    st.session_state.orchestrator = None

if "chat_id" not in st.session_state:
    st.session_state.chat_id = None

if "upload_key" not in st.session_state:
    st.session_state.upload_key = 0


def get_orchestrator(settings: Settings) -> ChatOrchestrator:
    """Get or create the orchestrator; rebuilt when settings change."""
    current = st.session_state.orchestrator
    if current is None or current.settings != settings:
        st.session_state.orchestrator = ChatOrchestrator(settings=settings)
        # Sweep stale memories once per orchestrator
        st.session_state.orchestrator.cleanup()
    return st.session_state.orchestrator


def available_models(orchestrator: ChatOrchestrator) -> List[str]:
    """Models offered by the provider, fetched once per provider and key."""
    cache_key = (orchestrator.settings.llm_provider, orchestrator.settings.get_llm_api_key())
    if st.session_state.get("models_for") != cache_key:
        try:
            st.session_state.models = orchestrator.list_models()
        except Exception as e:
            st.sidebar.warning(f"Could not load models: {e}")
            st.session_state.models = []
        st.session_state.models_for = cache_key
    return st.session_state.models


def to_attachment(uploaded) -> Attachment:
    """Convert a Streamlit upload into an Attachment."""
    mime_type = uploaded.type or "text/plain"
    data = uploaded.getvalue()
    if mime_type.startswith("image/"):
        content = f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"
    else:
        content = data.decode("utf-8", errors="replace")
    return Attachment(name=uploaded.name, mime_type=mime_type, content=content)


# Sidebar configuration
st.sidebar.header("Configuration")

llm_provider = st.sidebar.selectbox(
    "LLM Provider",
    options=["openai", "anthropic"],
    index=0
)

openai_api_key = st.sidebar.text_input(
    "OpenAI API Key",
    value=os.environ.get("OPENAI_API_KEY", ""),
    type="password"
)

anthropic_api_key = st.sidebar.text_input(
    "Anthropic API Key",
    value=os.environ.get("ANTHROPIC_API_KEY", ""),
    type="password"
)

# Filled once the provider's model list is known
model_slot = st.sidebar.empty()

with st.sidebar.expander("System Prompt"):
    system_prompt = st.text_area(
        "Instructions sent with every message",
        value="",
        height=150
    )

with st.sidebar.expander("Advanced Settings"):
    memory_enabled = st.checkbox(
        "Enable Memory",
        value=True,
        help="Inject compacted conversation memory into each request"
    )
    db_path = st.text_input("Database Path", value="data/chat_memory.db")
    retention_days = st.slider(
        "Memory retention (days)",
        min_value=1,
        max_value=365,
        value=30
    )
    show_debug = st.checkbox("Show memory context", value=False)

settings = Settings(
    llm_provider=llm_provider,
    llm_model=st.session_state.get("llm_model") or None,
    openai_api_key=openai_api_key or None,
    anthropic_api_key=anthropic_api_key or None,
    system_prompt=system_prompt,
    memory_enabled=memory_enabled,
    db_path=db_path,
    memory_retention_days=retention_days,
)
orchestrator = get_orchestrator(settings)

models = available_models(orchestrator)
if models:
    options = [""] + models
    if st.session_state.get("llm_model", "") not in options:
        st.session_state.llm_model = ""
        st.rerun()
    model_slot.selectbox(
        "Model",
        options=options,
        key="llm_model",
        format_func=lambda name: name or "provider default"
    )
else:
    model_slot.text_input(
        "Model",
        key="llm_model",
        placeholder="provider default",
        help="Leave empty to use the provider's default model"
    )

# Chat list
st.sidebar.markdown("---")
if st.sidebar.button("New Chat", type="primary"):
    st.session_state.chat_id = orchestrator.new_chat()
    st.rerun()

chats = orchestrator.list_chats()
for chat in chats:
    col1, col2 = st.sidebar.columns([5, 1])
    label = f"▶ {chat.title}" if chat.chat_id == st.session_state.chat_id else chat.title
    if col1.button(label, key=f"open_{chat.chat_id}"):
        st.session_state.chat_id = chat.chat_id
        st.rerun()
    if col2.button("🗑", key=f"delete_{chat.chat_id}"):
        orchestrator.delete_chat(chat.chat_id)
        if st.session_state.chat_id == chat.chat_id:
            st.session_state.chat_id = None
        st.rerun()

if st.session_state.chat_id is None:
    st.session_state.chat_id = orchestrator.new_chat()
chat_id = st.session_state.chat_id

current_chat = next((chat for chat in chats if chat.chat_id == chat_id), None)
if current_chat:
    with st.sidebar.expander("Rename chat"):
        new_title = st.text_input("Title", value=current_chat.title, key=f"title_{chat_id}")
        if st.button("Rename", key=f"rename_{chat_id}"):
            orchestrator.rename_chat(chat_id, new_title)
            st.rerun()

# Main content
st.title("Chat Memory Assistant")

status = orchestrator.memory_status(chat_id)
if status.has_memory:
    st.caption(f"🧠 Memory active • {status.message_count} messages remembered")

if show_debug:
    with st.expander("Memory context"):
        st.code(orchestrator.memory.load_context(chat_id) or "(empty)")

# Display chat messages
for message in orchestrator.load_messages(chat_id):
    with st.chat_message("user" if message.role == MessageRole.USER else "assistant"):
        st.markdown(message.content)

# A fresh key per send clears the uploader
uploads = st.file_uploader(
    "Attach files",
    accept_multiple_files=True,
    key=f"uploads_{st.session_state.upload_key}"
)

# Chat input
if prompt := st.chat_input("Send a message..."):
    attachments = [to_attachment(upload) for upload in uploads or []]
    st.session_state.upload_key += 1

    with st.chat_message("user"):
        st.markdown(prompt)

    with st.chat_message("assistant"):
        try:
            st.write_stream(orchestrator.stream_message(chat_id, prompt, attachments))
        except Exception as e:
            st.error(f"Error processing message: {e}")
        else:
            st.rerun()

# Footer
st.sidebar.markdown("---")
st.sidebar.markdown("Built with Streamlit")
