from dotenv import load_dotenv
from dataclasses import dataclass
from pathlib import Path
import json
import os

from .browser_config import DEFAULT_USER_AGENT, BrowserConfig

load_dotenv()  # Loads variables from .env file


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """
    Manages process settings loaded from environment variables.
    """
    CRAWL_BROWSER_TYPE = os.getenv("CRAWL_BROWSER_TYPE", "chromium")
    CRAWL_HEADLESS = _env_bool("CRAWL_HEADLESS", True)
    CRAWL_SCREENSHOT_DIR = os.getenv("CRAWL_SCREENSHOT_DIR", ".tmp/crawl-artifacts")
    USER_AGENT = os.getenv("USER_AGENT", DEFAULT_USER_AGENT)
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    def browser_config(self) -> BrowserConfig:
        """BrowserConfig reflecting these settings."""
        return BrowserConfig(
            browser_type=self.CRAWL_BROWSER_TYPE,
            headless=self.CRAWL_HEADLESS,
            user_agent=self.USER_AGENT,
            screenshot_dir=self.CRAWL_SCREENSHOT_DIR,
        )


settings = Settings()


@dataclass
class CrawlDefaults:
    """Default job parameters applied by callers before building a job."""

    # Content crawl
    max_pages: int = 10
    depth: int = 3
    strategy: str = "bfs"
    wait_time: int = 1000  # milliseconds

    # Sitemap
    sitemap_max_pages: int = 50
    sitemap_depth: int = 2

    # Link extraction
    max_links: int = 100

    @classmethod
    def from_env(cls) -> "CrawlDefaults":
        """Load defaults from environment variables.

        Environment variables are prefixed with CRAWL_DEFAULT_
        e.g., CRAWL_DEFAULT_MAX_PAGES=25

        Returns:
            CrawlDefaults with values from environment
        """
        defaults = cls()
        prefix = "CRAWL_DEFAULT_"

        for field_name in defaults.__dataclass_fields__:
            env_key = f"{prefix}{field_name.upper()}"
            env_value = os.getenv(env_key)

            if env_value is not None:
                field_type = defaults.__dataclass_fields__[field_name].type
                try:
                    if field_type == int:
                        setattr(defaults, field_name, int(env_value))
                    else:
                        setattr(defaults, field_name, env_value)
                except ValueError:
                    pass  # Keep default if conversion fails

        return defaults

    @classmethod
    def from_file(cls, path: str) -> "CrawlDefaults":
        """Load defaults from a JSON configuration file.

        Args:
            path: Path to JSON configuration file; values may sit under a
                top-level "defaults" key

        Returns:
            CrawlDefaults with values from file
        """
        defaults = cls()
        file_path = Path(path)

        if not file_path.exists():
            return defaults

        with open(file_path, 'r') as f:
            config = json.load(f)

        default_config = config.get('defaults', config)

        for field_name in defaults.__dataclass_fields__:
            if field_name in default_config:
                setattr(defaults, field_name, default_config[field_name])

        return defaults

    def to_dict(self) -> dict:
        """Convert defaults to dictionary.

        Returns:
            Dictionary of all default values
        """
        return {
            field_name: getattr(self, field_name)
            for field_name in self.__dataclass_fields__
        }
