from datetime import UTC, datetime

from calextract.core.config import Settings
from calextract.schemas.health import HealthResponse
from calextract.services.location_enhancer import get_location_directory


class HealthService:
    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def get_status(self) -> HealthResponse:
        return HealthResponse(
            status="ok",
            service=self.settings.app_name,
            version=self.settings.app_version,
            inference_provider=self.settings.inference_provider,
            inference_configured=self._inference_configured(),
            known_locations=len(get_location_directory()),
            timestamp=datetime.now(UTC),
        )

    def _inference_configured(self) -> bool:
        if self.settings.inference_provider == "gemini":
            return bool(self.settings.gemini_api_key.strip())
        if self.settings.inference_provider == "openai":
            return bool(self.settings.openai_api_key.strip())
        return False
