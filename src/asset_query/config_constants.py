from enum import Enum


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

class LOCAL_LLM_MODELS(str, Enum):
    # Models served by an OpenAI-compatible local inference server
    PHI_31_MINI_128K = "phi-3.1-mini-128k-instruct"
    LLAMA_31_8B = "meta-llama-3.1-8b-instruct"
    QWEN_25_CODER_7B = "qwen2.5-coder-7b-instruct"

# OpenAI-compatible chat completions server (LM Studio default port)
LOCAL_LLM_API_URL = "http://127.0.0.1:1234/v1"

# Local servers ignore the key but the OpenAI client requires one
LOCAL_LLM_API_KEY = "not-needed"

# -------------------------
# Query Loop Constants
# -------------------------

DEFAULT_SESSION_ID = "default"
