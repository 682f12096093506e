import json

from storyweaver.settings import AppConfig


def test_defaults():
    assert AppConfig.get_value("text_model") == "gemini-2.5-flash"
    assert AppConfig.get_value("voice_name") == "Kore"
    assert AppConfig.get_int("sample_rate") == 24000
    assert AppConfig.get_value("unknown_key", "fallback") == "fallback"


def test_environment_overrides_defaults(monkeypatch):
    monkeypatch.setenv("STORYWEAVER_VOICE_NAME", "Puck")
    monkeypatch.setenv("STORYWEAVER_SAMPLE_RATE", "16000")
    assert AppConfig.get_value("voice_name") == "Puck"
    assert AppConfig.get_int("sample_rate") == 16000


def test_config_file_overrides_defaults(monkeypatch, tmp_path):
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"voice_name": "Leda", "image_aspect_ratio": "1:1"}))
    monkeypatch.setenv("STORYWEAVER_CONFIG_PATH", str(config_path))
    AppConfig.reset()

    assert AppConfig.get_value("voice_name") == "Leda"
    assert AppConfig.get_value("image_aspect_ratio") == "1:1"
    assert AppConfig.get_value("text_model") == "gemini-2.5-flash"


def test_unreadable_config_file_falls_back_to_defaults(monkeypatch, tmp_path):
    config_path = tmp_path / "config.json"
    config_path.write_text("{not json")
    monkeypatch.setenv("STORYWEAVER_CONFIG_PATH", str(config_path))
    AppConfig.reset()

    assert AppConfig.get_value("voice_name") == "Kore"


def test_invalid_integer_uses_default(monkeypatch):
    monkeypatch.setenv("STORYWEAVER_SAMPLE_RATE", "fast")
    assert AppConfig.get_int("sample_rate", 24000) == 24000


def test_google_api_key_lookup_order(monkeypatch):
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
    monkeypatch.setenv("GEMINI_API_KEY", "gemini-key")
    assert AppConfig.get_google_api_key() == "gemini-key"

    monkeypatch.setenv("GOOGLE_API_KEY", "google-key")
    assert AppConfig.get_google_api_key() == "google-key"
