from unittest.mock import Mock

import pytest
import requests

from newsdesk.errors import PublishError
from newsdesk.telegram import CAPTION_LIMIT, TelegramClient, TelegramPublisher, format_post


def make_response(status=200, payload=None):
    resp = Mock()
    resp.status_code = status
    resp.json.return_value = payload if payload is not None else {"ok": True, "result": []}
    resp.text = str(payload)
    return resp


class TestFormatPost:
    def test_escapes_text_and_appends_link(self):
        post = format_post("Cuts <b>hit</b> schools & clinics", "https://example.org/a?x=1&y=2")
        assert post.startswith("Cuts &lt;b&gt;hit&lt;/b&gt; schools &amp; clinics\n\n")
        assert '<a href="https://example.org/a?x=1&amp;y=2">' in post
        assert post.endswith("View Full Article</a>")

    def test_no_link_without_url(self):
        assert format_post("  Plain  ") == "Plain"


class TestClient:
    def test_call_success(self):
        session = Mock()
        session.post.return_value = make_response(200, {"ok": True, "result": {"message_id": 1}})
        client = TelegramClient("TOKEN", session=session)

        ok, err, payload = client.call("sendMessage", {"chat_id": "1"})

        assert ok and err == ""
        assert payload["result"]["message_id"] == 1
        assert session.post.call_args.args[0] == "https://api.telegram.org/botTOKEN/sendMessage"

    def test_call_api_error(self):
        session = Mock()
        session.post.return_value = make_response(400, {"ok": False, "description": "Bad Request: chat not found"})
        ok, err, _ = TelegramClient("T", session=session).call("sendMessage")
        assert not ok
        assert "telegram_status=400" in err
        assert "chat not found" in err

    def test_call_network_error(self):
        session = Mock()
        session.post.side_effect = requests.ConnectionError("down")
        ok, err, payload = TelegramClient("T", session=session).call("getMe")
        assert not ok
        assert err == "telegram_request_error:ConnectionError"
        assert payload == {}

    def test_get_updates_failure_returns_empty(self):
        session = Mock()
        session.post.side_effect = requests.Timeout("slow")
        assert TelegramClient("T", session=session).get_updates(offset=5) == []

    def test_send_document(self, tmp_path):
        path = tmp_path / "activity.log"
        path.write_text("line\n")
        session = Mock()
        session.post.return_value = make_response()

        ok, _ = TelegramClient("T", session=session).send_document("42", path, "activity_log.txt", "caption")

        assert ok
        kwargs = session.post.call_args.kwargs
        assert kwargs["data"] == {"chat_id": "42", "caption": "caption"}
        assert kwargs["files"]["document"][0] == "activity_log.txt"


class TestPublisher:
    def test_photo_with_caption(self):
        client = Mock()
        client.send_photo.return_value = (True, "")
        TelegramPublisher(client, "@channel").publish("Summary.", "https://img/a.jpg", "https://site/a")

        chat, photo, caption = client.send_photo.call_args.args
        assert (chat, photo) == ("@channel", "https://img/a.jpg")
        assert "https://site/a" in caption
        client.send_message.assert_not_called()

    def test_photo_failure_falls_back_to_text(self):
        client = Mock()
        client.send_photo.return_value = (False, "telegram_status=400 body=wrong file")
        client.send_message.return_value = (True, "")

        TelegramPublisher(client, "@channel").publish("Summary.", "https://img/a.jpg", "https://site/a")

        text = client.send_message.call_args.args[1]
        assert text.startswith("Summary.")
        assert '<a href="https://img/a.jpg">' in text

    def test_long_caption_skips_photo(self):
        client = Mock()
        client.send_message.return_value = (True, "")
        TelegramPublisher(client, "@c").publish("x" * (CAPTION_LIMIT + 10), "https://img/a.jpg", "https://site/a")
        client.send_photo.assert_not_called()
        client.send_message.assert_called_once()

    def test_text_only_without_image(self):
        client = Mock()
        client.send_message.return_value = (True, "")
        TelegramPublisher(client, "@c").publish("Summary.", None, "https://site/a")
        client.send_photo.assert_not_called()
        assert "https://img" not in client.send_message.call_args.args[1]

    def test_raises_when_text_fails(self):
        client = Mock()
        client.send_message.return_value = (False, "telegram_status=500 body=oops")
        with pytest.raises(PublishError):
            TelegramPublisher(client, "@c").publish("Summary.", None, "https://site/a")
