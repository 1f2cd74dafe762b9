"""Tests for the Streamlit chat page."""

import pytest
from pathlib import Path
from streamlit.testing.v1 import AppTest

APP_PATH = str(Path(__file__).resolve().parent.parent / "streamlit_app.py")


@pytest.fixture
def app(tmp_path, monkeypatch):
    """Run the page without provider keys, storing data under tmp_path."""
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    monkeypatch.chdir(tmp_path)
    at = AppTest.from_file(APP_PATH, default_timeout=30)
    at.run()
    return at


class TestStreamlitApp:
    """Page behaviour that does not need a provider."""

    def test_page_renders(self, app):
        assert not app.exception
        assert app.title[0].value == "Chat Memory Assistant"
        assert app.session_state.upload_key == 0

    def test_model_falls_back_to_free_text(self, app):
        """Test that an empty model list leaves a text box for the model."""
        assert app.text_input(key="llm_model").value == ""

    def test_failed_send_still_clears_uploads(self, app):
        """Test that the uploader is reset even when the send fails."""
        app.chat_input[0].set_value("hi").run()

        assert not app.exception
        assert app.session_state.upload_key == 1
        assert "Error processing message" in app.error[0].value
