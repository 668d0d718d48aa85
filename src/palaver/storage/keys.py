SESSIONS_KEY = "palaver-sessions"
CURRENT_SESSION_KEY = "palaver-current-session"
LEGACY_MESSAGES_KEY = "palaver-messages"

API_KEY_KEY = "palaver-api-key"
MODEL_KEY = "palaver-model"
SYSTEM_PHRASE_KEY = "palaver-system-phrase"
AI_NAME_KEY = "palaver-ai-name"
SITE_NAME_KEY = "palaver-site-name"
