import os

from dotenv import load_dotenv

load_dotenv(".env.local")
load_dotenv()

LLM_PROVIDER = os.getenv("LLM_PROVIDER", "openai").lower()
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY")
OPENAI_ROUTING_MODEL = os.getenv("OPENAI_ROUTING_MODEL", "gpt-4o")
OPENAI_NARRATION_MODEL = os.getenv("OPENAI_NARRATION_MODEL", "gpt-4o")
ANTHROPIC_MODEL = os.getenv("ANTHROPIC_MODEL", "claude-sonnet-4-5-20250929")

COINGECKO_API_KEY = os.getenv("COINGECKO_API_KEY")
SCREENER_USERNAME = os.getenv("SCREENER_USERNAME")
SCREENER_PASSWORD = os.getenv("SCREENER_PASSWORD")

APP_ENV = os.getenv("APP_ENV", "production").lower()

CHAT_LOG_DIR = os.getenv("CHAT_LOG_DIR", "data/chat_logs")
COMPANY_INFO_PATH = os.getenv("COMPANY_INFO_PATH", "data/company_info.json")
COMPANY_NAME = os.getenv("COMPANY_NAME", "Profit Flow")
DEFAULT_USER_ID = os.getenv("DEFAULT_USER_ID", "static-user-123")

UPSTREAM_TIMEOUT_SECONDS = float(os.getenv("UPSTREAM_TIMEOUT_SECONDS", "15"))
DISPATCH_TIMEOUT_SECONDS = float(os.getenv("DISPATCH_TIMEOUT_SECONDS", "90"))
LLM_TIMEOUT_SECONDS = float(os.getenv("LLM_TIMEOUT_SECONDS", "60"))
COOKIE_TTL_SECONDS = int(os.getenv("COOKIE_TTL_SECONDS", "300"))
