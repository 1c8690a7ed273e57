from storebot.config import DEFAULT_MANUAL_PAYMENT, load_config


class TestLoadConfig:
    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("BOT_TOKEN", "token")
        monkeypatch.setenv("OWNER_ID", "1234")
        monkeypatch.setenv("MIN_DEPOSIT", "5000")
        monkeypatch.setenv("REQUIRE_APPROVAL", "no")
        monkeypatch.setenv("GATEWAY_BASE_URL", "https://gateway.example/")

        config = load_config()
        assert config.bot_token == "token"
        assert config.owner_id == 1234
        assert config.min_deposit == 5000
        assert config.require_approval is False
        assert config.gateway_create_url == "https://gateway.example/h2h/deposit/create"

    def test_bad_numbers_fall_back(self, monkeypatch):
        monkeypatch.setenv("OWNER_ID", "not-a-number")
        monkeypatch.setenv("RATE_LIMIT_WINDOW_SECONDS", "soon")
        config = load_config()
        assert config.owner_id == 0
        assert config.rate_limit_window_seconds == 60.0

    def test_manual_payment_json(self, monkeypatch):
        monkeypatch.setenv("MANUAL_PAYMENT_METHODS_JSON", '{"dana": {"number": "0812"}}')
        config = load_config()
        assert config.manual_payment == {"DANA": {"enabled": True, "number": "0812"}}

    def test_invalid_manual_payment_json(self, monkeypatch):
        monkeypatch.setenv("MANUAL_PAYMENT_METHODS_JSON", "[1, 2]")
        assert load_config().manual_payment == DEFAULT_MANUAL_PAYMENT

    def test_encryption_needs_key_and_iv(self, monkeypatch):
        monkeypatch.setenv("ENCRYPTION_KEY", "ab" * 32)
        monkeypatch.delenv("ENCRYPTION_IV", raising=False)
        assert load_config().encryption_enabled is False
