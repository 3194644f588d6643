import json
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory
from unittest.mock import Mock, patch
from urllib.error import HTTPError

from video_workstation.tts import (
    SPEECH_ENDPOINT,
    TTSSynthesisError,
    build_speech_payload,
    request_speech,
    synthesize_project_audio,
)
from video_workstation.workspace import TTSConfig

CONFIG = TTSConfig("secret", "https://example.com/voice.wav", "Prompt text")


def _audio_response(body: bytes) -> Mock:
    response = Mock()
    response.read.return_value = body
    response.__enter__ = Mock(return_value=response)
    response.__exit__ = Mock(return_value=False)
    return response


class TestSpeechPayload(unittest.TestCase):
    def test_emotion_only_sent_when_enabled(self) -> None:
        plain = build_speech_payload(CONFIG, "Hi", "happy", use_emo_text=False)
        with_emotion = build_speech_payload(CONFIG, "Hi", "happy", use_emo_text=True)

        self.assertNotIn("emo_text", plain)
        self.assertFalse(plain["use_emo_text"])
        self.assertEqual(with_emotion["emo_text"], "happy")
        self.assertEqual(with_emotion["model"], "IndexTTS-2")
        self.assertEqual(with_emotion["voice"], "alloy")
        self.assertEqual(with_emotion["prompt_audio_url"], "https://example.com/voice.wav")


class TestRequestSpeech(unittest.TestCase):
    def test_sends_bearer_token(self) -> None:
        urlopen_mock = Mock(return_value=_audio_response(b"RIFF"))

        with patch("video_workstation.tts.request.urlopen", urlopen_mock):
            audio = request_speech(CONFIG, "Hi")

        self.assertEqual(audio, b"RIFF")
        request_obj = urlopen_mock.call_args[0][0]
        self.assertEqual(request_obj.full_url, SPEECH_ENDPOINT)
        self.assertEqual(request_obj.get_header("Authorization"), "Bearer secret")
        self.assertEqual(json.loads(request_obj.data.decode("utf-8"))["input"], "Hi")

    def test_http_error_raises(self) -> None:
        urlopen_mock = Mock(
            side_effect=HTTPError(SPEECH_ENDPOINT, 401, "Unauthorized", None, None)
        )

        with patch("video_workstation.tts.request.urlopen", urlopen_mock):
            with self.assertRaises(TTSSynthesisError):
                request_speech(CONFIG, "Hi")

    def test_empty_audio_raises(self) -> None:
        with patch(
            "video_workstation.tts.request.urlopen", Mock(return_value=_audio_response(b""))
        ):
            with self.assertRaises(TTSSynthesisError):
                request_speech(CONFIG, "Hi")


class TestSynthesizeProjectAudio(unittest.TestCase):
    def test_writes_numbered_audio_and_text(self) -> None:
        with TemporaryDirectory() as tmpdir:
            project = Path(tmpdir)
            (project / "tts").mkdir()
            (project / "tts" / "1.wav").write_bytes(b"old")

            with patch(
                "video_workstation.tts.request_speech", return_value=b"audio"
            ) as speech_mock:
                path = synthesize_project_audio(project, CONFIG, "Hello", emo_text="calm")

            self.assertEqual(path, project / "tts" / "2.wav")
            self.assertEqual(path.read_bytes(), b"audio")
            self.assertEqual(
                (project / "tts" / "text" / "2.txt").read_text(encoding="utf-8"), "Hello"
            )
        speech_mock.assert_called_once_with(CONFIG, "Hello", "calm", True)

    def test_blank_text_is_rejected(self) -> None:
        with TemporaryDirectory() as tmpdir:
            with self.assertRaises(TTSSynthesisError):
                synthesize_project_audio(Path(tmpdir), CONFIG, "   ")


if __name__ == "__main__":
    unittest.main()
