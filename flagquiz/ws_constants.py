"""WebSocket protocol constants: event kinds and game modes.

Pure data module -- no imports, no logic. Safe to import from any flagquiz
module without risk of circular dependencies.
"""

# ── Server -> Client event kinds ──────────────────────────────────────

EVT_PLAYER_JOINED = "playerJoined"
EVT_PLAYER_LEFT = "playerLeft"
EVT_COUNTDOWN = "countdown"
EVT_GAME_STARTED = "gameStarted"
EVT_NEW_QUESTION = "new_question"
EVT_ANSWER_RESULT = "answer_result"
EVT_SCORE = "score"
EVT_FINISHED_GAME = "finished_game"
EVT_TIME_OVER = "time_over"
EVT_ALL_PLAYERS_FINISHED = "all_players_finished"

# Not a real kind: error frames arrive as {"error": "..."} with no event key
EVT_SERVER_ERROR = "error"

# ── Client -> Server request kinds ────────────────────────────────────

REQ_JOIN_ROOM = "joinRoom"
REQ_LOAD_GAME = "loadgame"
REQ_GET_NEW_QUESTION = "get_new_question"
REQ_VALIDATE_ANSWER = "validate_answer"
REQ_CLEAN_ROOM = "clean_room"
REQ_LEAVE = "leave"

# ── Game modes ────────────────────────────────────────────────────────

MODE_MCQ = "MCQ"
MODE_MAP = "MAP"
