"""Unit tests for application configuration"""
import pytest
import os
from unittest.mock import patch


class TestConfig:
    """Tests for Settings configuration class"""

    def test_default_settings(self):
        """Test that default settings are properly loaded"""
        from land_registry.config import Settings

        settings = Settings()

        assert settings.APP_NAME == "Land Registry System"
        assert settings.ENVIRONMENT == "development"
        assert settings.API_PREFIX == "/api"
        assert settings.DEFAULT_CURRENCY == "ETB"

    def test_secret_key_not_random(self):
        """Test that SECRET_KEY is persistent (not random) in development"""
        from land_registry.config import Settings, _DEV_SECRET_KEY

        assert Settings().SECRET_KEY == _DEV_SECRET_KEY
        assert Settings().SECRET_KEY == Settings().SECRET_KEY

    def test_allowed_origins_list(self):
        """Test that ALLOWED_ORIGINS is properly parsed"""
        from land_registry.config import settings

        origins = settings.allowed_origins_list
        assert isinstance(origins, list)
        assert "http://localhost:5173" in origins
        assert "http://localhost:3000" in origins

    def test_max_upload_size_bytes(self):
        """Test that max upload size is calculated correctly"""
        from land_registry.config import settings

        # Default is 5MB
        assert settings.max_upload_size_bytes == 5 * 1024 * 1024

    def test_allowed_extensions_list(self):
        """Test that file extensions are properly parsed"""
        from land_registry.config import settings

        extensions = settings.allowed_extensions_list
        assert extensions == [".pdf", ".jpg", ".jpeg", ".png", ".doc", ".docx"]
        assert ".txt" not in extensions

    def test_allowed_mimetypes_list(self):
        """Test that MIME types are properly parsed"""
        from land_registry.config import settings

        mimetypes = settings.allowed_mimetypes_list
        assert "application/pdf" in mimetypes
        assert "image/png" in mimetypes
        assert "text/plain" not in mimetypes

    @patch.dict(os.environ, {"ENVIRONMENT": "production", "SECRET_KEY": "a" * 32})
    def test_production_secret_key_validation(self):
        """Test that production accepts a long custom SECRET_KEY"""
        from land_registry.config import Settings

        settings = Settings(ENVIRONMENT="production", SECRET_KEY="a" * 32)
        assert len(settings.SECRET_KEY) >= 32

    @patch.dict(os.environ, {"ENVIRONMENT": "production"})
    def test_production_rejects_dev_key(self):
        """Test that production rejects the development key"""
        from land_registry.config import Settings, _DEV_SECRET_KEY

        with pytest.raises(ValueError, match="SECRET_KEY must be set"):
            Settings(ENVIRONMENT="production", SECRET_KEY=_DEV_SECRET_KEY)

    @patch.dict(os.environ, {"ENVIRONMENT": "production"})
    def test_production_rejects_short_key(self):
        """Test that production rejects short SECRET_KEY"""
        from land_registry.config import Settings

        with pytest.raises(ValueError, match="at least 32 characters"):
            Settings(ENVIRONMENT="production", SECRET_KEY="short")


class TestFeeConfig:
    """Tests for fee and gateway configuration"""

    def test_fee_defaults(self):
        from land_registry.config import Settings

        settings = Settings()

        assert settings.REGISTRATION_PROCESSING_FEE == 550.0
        assert settings.TRANSFER_PROCESSING_FEE == 300.0
        assert settings.TRANSFER_TAX_RATE == 0.03
        assert settings.STAMP_DUTY_RATE == 0.005
        assert settings.MAX_DISCOUNT_RATE == 0.5

    def test_gateway_session_defaults(self):
        from land_registry.config import Settings

        settings = Settings()

        assert settings.CBE_BIRR_SESSION_MINUTES == 30
        assert settings.TELEBIRR_SESSION_MINUTES == 15
        assert settings.CHAPA_SESSION_MINUTES == 30
        assert settings.BANK_TRANSFER_SESSION_MINUTES == 1440

    def test_success_rate_must_be_probability(self):
        """Test that the simulated gateway success rate is bounded"""
        from land_registry.config import Settings

        with pytest.raises(ValueError, match="between 0 and 1"):
            Settings(PAYMENT_GATEWAY_SUCCESS_RATE=1.5)

    def test_eager_celery_enabled_for_tests(self):
        from land_registry.config import Settings

        assert Settings().CELERY_TASK_ALWAYS_EAGER is True
