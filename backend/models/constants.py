from __future__ import annotations

DEFAULT_KIE_API_BASE = "https://api.kie.ai"
GENERATE_PATH = "/api/v1/generate"
RECORD_INFO_PATH = "/api/v1/generate/record-info"
DEFAULT_KIE_MODEL = "V3_5"

POLL_INTERVAL_SECONDS = 5.0
MAX_POLL_ATTEMPTS = 36  # 36 * 5 seconds = 3 minutes
REQUEST_TIMEOUT_SECONDS = 30.0

DEFAULT_DURATION_SECONDS = 60
DEFAULT_CONTENT_TYPE = "audio/mpeg"

STORE_MAX_ATTEMPTS = 3
STORE_BACKOFF_SECONDS = 1.0
DOWNLOAD_MAX_ATTEMPTS = 3
DOWNLOAD_BACKOFF_SECONDS = 1.0

DEFAULT_STORAGE_BUCKET = "music"
DEFAULT_STORAGE_REGION = "auto"
STORAGE_KEY_PREFIX = "generated"
MUSIC_KEY_STEM = "music"
THUMBNAIL_KEY_PREFIX = "thumbnails"
THUMBNAIL_KEY_STEM = "thumbnail"
DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./generated_music.db"

OUTCOME_HISTORY_SIZE = 32
DEFAULT_LIBRARY_LIMIT = 50
MAX_LIBRARY_LIMIT = 200
DEFAULT_SESSION_ID = "default"
MAX_SESSIONS = 64

DEFAULT_LLM_API_URL = "https://ai.gateway.lovable.dev/v1/chat/completions"
DEFAULT_LLM_MODEL = "google/gemini-2.5-flash"
LLM_MAX_TOKENS = 300
LLM_TEMPERATURE = 0.8
DEFAULT_PROMPT_SUGGESTION_INPUT = "Create a unique and interesting track"

DEFAULT_LLM_IMAGE_MODEL = "google/gemini-2.5-flash-image-preview"
DEFAULT_THUMBNAIL_STYLE = "modern and vibrant"
THUMBNAIL_PROMPT_TEMPLATE = (
    'YouTube music video thumbnail for a song titled "{title}". Style: {style}. '
    "High quality, eye-catching, professional music thumbnail with bold visuals "
    "and atmospheric lighting. 16:9 aspect ratio."
)

PROMPT_SUGGESTION_SYSTEM_PROMPT = """You are an AI Music Prompt Generator.

Your job is NOT to generate music.
Your job is to generate a HIGH-QUALITY, READY-TO-USE music generation prompt
that can be pasted directly into a text-to-music tool.

Rules:
- Output ONLY the music prompt text.
- No explanations, no markdown, no labels, no quotes around it.
- Use clear, vivid, professional music production language.
- Always include: genre, mood, tempo (BPM), instruments, rhythm, atmosphere, and emotional direction.
- Avoid copyrighted artist names.
- Describe sound texture, space, and progression.
- Keep it concise but comprehensive (2-4 sentences max).

Output Style Example:
A dreamy lo-fi hip hop track at 80 BPM, warm vinyl crackle, soft jazzy chords, mellow boom-bap drums, gentle sidechained bass, late-night city atmosphere, nostalgic and calm, smooth transitions, loop-friendly, instrumental only.

Now generate a new, unique music prompt based on the user input."""

CONTENT_TYPE_EXTENSIONS = {
    "audio/mpeg": "mp3",
    "audio/mp3": "mp3",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/ogg": "ogg",
    "audio/flac": "flac",
    "audio/aac": "aac",
    "audio/mp4": "m4a",
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
}

INVALID_PAYLOAD_ERROR = (
    "Invalid payload. Expected { prompt: string, style?: string, instrumental?: boolean, model?: string }"
)
