import os
from pydantic import BaseModel

DEFAULT_COBALT_INSTANCES = ",".join([
    "https://api.cobalt.tools",
    "https://co.wuk.sh",
    "https://cobalt.xy24.eu",
    "https://api.wpsh.eu.org",
    "https://cobalt.kwiatekmiki.pl",
])


class Settings(BaseModel):
    app_env: str = os.getenv("APP_ENV", "local")
    cors_allow_origins: str = os.getenv("CORS_ALLOW_ORIGINS", "http://localhost:3000")
    http_timeout_seconds: float = float(os.getenv("HTTP_TIMEOUT_SECONDS", "60"))

    # Cloudinary (media store). The secret stays server-side; clients only get signatures.
    cloudinary_cloud_name: str = os.getenv("CLOUDINARY_CLOUD_NAME", "")
    cloudinary_api_key: str = os.getenv("CLOUDINARY_API_KEY", "")
    cloudinary_api_secret: str = os.getenv("CLOUDINARY_API_SECRET", "")
    cloudinary_api_base: str = os.getenv("CLOUDINARY_API_BASE", "https://api.cloudinary.com/v1_1")

    # Base URL of this API, used by the client-side uploader and scripts
    ourspace_api_url: str = os.getenv("OURSPACE_API_URL", "http://localhost:8000")

    # AI media tools
    ai_max_attempts: int = int(os.getenv("AI_MAX_ATTEMPTS", "6"))
    ai_retry_initial_delay_ms: int = int(os.getenv("AI_RETRY_INITIAL_DELAY_MS", "2000"))
    nekolabs_base_url: str = os.getenv("NEKOLABS_BASE_URL", "https://api.nekolabs.web.id")
    ryzumi_base_url: str = os.getenv("RYZUMI_BASE_URL", "https://api.ryzumi.vip")
    pitucode_api_key: str = os.getenv("PITUCODE_API_KEY", "")
    pitucode_username: str = os.getenv("PITUCODE_USERNAME", "")
    cobalt_instances: str = os.getenv("COBALT_INSTANCES", DEFAULT_COBALT_INSTANCES)

    # Investment monitor
    gold_api_key: str = os.getenv("GOLD_API_KEY", "")
    gold_cache_ttl_seconds: int = int(os.getenv("GOLD_CACHE_TTL_SECONDS", str(8 * 60 * 60)))

    def cobalt_instance_list(self) -> list[str]:
        return [u.strip().rstrip("/") for u in self.cobalt_instances.split(",") if u.strip()]

settings = Settings()
