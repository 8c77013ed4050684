import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _int_env(name: str, default: int) -> int:
    return int(os.getenv(name, default))


def _float_env(name: str, default: float) -> float:
    return float(os.getenv(name, default))


class Config:
    def __init__(self):
        # Generative backend
        self.OPENAI_API_KEY = os.getenv('OPENAI_API_KEY')
        self.OPENAI_MODEL = os.getenv('OPENAI_MODEL', 'gpt-4o-mini')
        self.OPENAI_BASE_URL = os.getenv('OPENAI_BASE_URL')
        self.LLM_TIMEOUT_SECONDS = _float_env('LLM_TIMEOUT_SECONDS', 60.0)
        self.LLM_TEMPERATURE = _float_env('LLM_TEMPERATURE', 0.7)

        # Worker
        self.REFRESH_INTERVAL_MINUTES = _int_env('REFRESH_INTERVAL_MINUTES', 15)
        self.LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

        # External fetches
        self.USER_AGENT = os.getenv('USER_AGENT', 'FinBot/1.0 (Investment Research Dashboard)')
        self.REQUEST_TIMEOUT_SECONDS = _float_env('REQUEST_TIMEOUT_SECONDS', 10.0)
        self.QUOTE_BATCH_SIZE = _int_env('QUOTE_BATCH_SIZE', 5)
        self.FEED_BATCH_SIZE = _int_env('FEED_BATCH_SIZE', 5)
        self.BATCH_PAUSE_SECONDS = _float_env('BATCH_PAUSE_SECONDS', 0.2)
        self.MARKET_CACHE_TTL_SECONDS = _int_env('MARKET_CACHE_TTL_SECONDS', 60)

        # Retention (newest kept, oldest evicted)
        self.NEWS_RETENTION = _int_env('NEWS_RETENTION', 500)
        self.EVENT_RETENTION = _int_env('EVENT_RETENTION', 100)
        self.INSIGHT_RETENTION = _int_env('INSIGHT_RETENTION', 50)
        self.ALERT_RETENTION = _int_env('ALERT_RETENTION', 200)

        # Orchestrator windows
        self.EVENT_CLUSTER_WINDOW = _int_env('EVENT_CLUSTER_WINDOW', 20)
        self.INSIGHT_EVENT_WINDOW = _int_env('INSIGHT_EVENT_WINDOW', 5)
        self.ALERT_SCAN_WINDOW = _int_env('ALERT_SCAN_WINDOW', 10)

        # Policy values
        self.RSI_NEUTRAL = _float_env('RSI_NEUTRAL', 50.0)
        self.SMA_SHORT_WINDOW = _int_env('SMA_SHORT_WINDOW', 20)
        self.SMA_LONG_WINDOW = _int_env('SMA_LONG_WINDOW', 50)
        self.FALLBACK_EVENT_CONFIDENCE = _int_env('FALLBACK_EVENT_CONFIDENCE', 30)
        self.FALLBACK_INSIGHT_CONFIDENCE = _int_env('FALLBACK_INSIGHT_CONFIDENCE', 20)
        self.PUBLISH_DECAY_HOURS = _float_env('PUBLISH_DECAY_HOURS', 24.0)
        self.FETCH_DECAY_HOURS = _float_env('FETCH_DECAY_HOURS', 6.0)
        self.MAX_TEXT_LENGTH = _int_env('MAX_TEXT_LENGTH', 5000)
        self.FINGERPRINT_LENGTH = _int_env('FINGERPRINT_LENGTH', 16)

    @property
    def llm_enabled(self) -> bool:
        return bool(self.OPENAI_API_KEY)


# Create configuration instance
config = Config()
