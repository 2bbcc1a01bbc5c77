import os
from dotenv import load_dotenv

load_dotenv()

# APP
OUTPUT_DIR = os.getenv("OUTPUT_DIR", "./output")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# NARRATION LOG
LOG_CAPACITY = int(os.getenv("LOG_CAPACITY", "50"))

# DOCUMENT INTAKE
MAX_FILE_SIZE_MB = int(os.getenv("MAX_FILE_SIZE_MB", "8"))
MAX_FILE_SIZE = MAX_FILE_SIZE_MB * 1024 * 1024

# LLM: EXTRACTION
EXTRACTION_MODE = os.getenv("EXTRACTION_MODE", "groq")  # groq | ollama
GROQ_API_KEY = os.getenv("GROQ_API_KEY", "")
GROQ_MODEL = os.getenv("GROQ_MODEL", "llama-3.3-70b-versatile")
OLLAMA_MODEL = os.getenv("OLLAMA_MODEL", "llama3.1:8b")
OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0.0"))
LLM_MAX_TOKENS = int(os.getenv("LLM_MAX_TOKENS", "8192"))
CRITIQUE_TEMPERATURE = float(os.getenv("CRITIQUE_TEMPERATURE", "0.2"))
