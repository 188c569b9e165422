import asyncio
import logging
import os
import sys
import threading

from flagquiz.client import MultiplayerClient
from flagquiz.config import LOG_LEVEL
from flagquiz.errors import InvalidRequestError, RoomLookupError
from flagquiz.projection import View
from flagquiz.rooms_api import RoomsAPI
from flagquiz.singleplayer import start_singleplayer_game


def print_view(view: View) -> None:
    """Minimal console renderer."""
    if view.room_error:
        print(f"[room error] {view.room_error}")
        return
    if view.disconnected:
        print("[disconnected] the game cannot continue")
    if view.show_waiting_room:
        print(f"Room {view.room_code} (host {view.host}): {', '.join(view.player_names)}")
        if view.show_start_button:
            print("  type 'start' to begin")
    if view.countdown_text:
        print(f"The game begins in {view.countdown_text}")
    if view.progress_label and (view.show_mcq or view.show_map):
        print(f"{view.progress_label}  [{view.timer_text}]  {view.flag_url}")
        for option in view.options:
            print(f"  - {option}")
    if view.feedback:
        mark = "correct" if view.feedback.is_correct else f"wrong, it was {view.feedback.correct_answer}"
        print(f"  {view.feedback.chosen_answer}: {mark}")
    if view.overlay:
        print(f"*** {view.overlay} ***")
    if view.leaderboard_open:
        for row in view.leaderboard:
            me = " (You)" if row.is_me else ""
            done = " *" if row.completed else ""
            print(f"  {row.rank}. {row.username}{me} {row.score}{done}")


def stdin_lines() -> asyncio.Queue:
    """Feed stdin lines into a queue from a daemon thread (None at EOF).

    A daemon thread does not hold the process open once the game is over.
    """
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    def pump():
        try:
            for line in sys.stdin:
                loop.call_soon_threadsafe(queue.put_nowait, line.strip())
            loop.call_soon_threadsafe(queue.put_nowait, None)
        except RuntimeError:
            # Event loop already closed
            return

    threading.Thread(target=pump, name="stdin-reader", daemon=True).start()
    return queue


async def read_commands(client: MultiplayerClient, lines: asyncio.Queue) -> None:
    while True:
        line = await lines.get()
        if line is None:
            return
        if not line:
            continue
        if line == "start":
            await client.start_game()
        elif line == "lb":
            await client.dispatcher.toggle_leaderboard()
        elif line == "quit":
            await client.leave()
            return
        else:
            await client.answer(line)


async def play_single(lines: asyncio.Queue, api: RoomsAPI, num_questions: int, game_mode: str) -> int:
    game = await start_singleplayer_game(api, num_questions, game_mode)
    while not game.finished:
        print(f"{game.progress}  {game.current.flag_url}")
        for option in game.shuffled_options():
            print(f"  - {option}")
        line = await lines.get()
        if line is None:
            break
        try:
            result = game.answer(line)
        except InvalidRequestError as e:
            print(e)
            continue
        print("  correct" if result.is_correct else f"  wrong, it was {result.correct_answer}")
    print(game.summary)
    return 0


async def play_multi(lines: asyncio.Queue, api: RoomsAPI, mode: str, username: str) -> int:
    room_id = os.environ.get("FLAGQUIZ_ROOM", "")
    join_check = True
    if mode == "create":
        details = await api.create_room(
            username,
            num_questions=int(os.environ.get("FLAGQUIZ_NUM_QUESTIONS", "10")),
            time_limit=int(os.environ.get("FLAGQUIZ_TIME_LIMIT", "5")),
            game_mode=os.environ.get("FLAGQUIZ_GAME_MODE", "MCQ"),
        )
        room_id = details.code
        join_check = False
        print(f"Created room {room_id}")

    client = MultiplayerClient(
        room_id, username, renderer=print_view, api=api, join_check=join_check
    )
    commands = asyncio.ensure_future(read_commands(client, lines))
    try:
        ok = await client.run()
    finally:
        commands.cancel()
    return 0 if ok else 1


async def main() -> int:
    mode = os.environ.get("FLAGQUIZ_MODE", "join").lower()
    username = os.environ.get("FLAGQUIZ_USERNAME", "")
    lines = stdin_lines()
    try:
        async with RoomsAPI() as api:
            if mode == "single":
                return await play_single(
                    lines,
                    api,
                    int(os.environ.get("FLAGQUIZ_NUM_QUESTIONS", "10")),
                    os.environ.get("FLAGQUIZ_GAME_MODE", "MCQ"),
                )
            if mode in ("join", "create"):
                return await play_multi(lines, api, mode, username)
    except InvalidRequestError as e:
        print(e, file=sys.stderr)
        return 2
    except RoomLookupError as e:
        print(f"[room error] {e.message}", file=sys.stderr)
        return 1
    print(f"Unknown FLAGQUIZ_MODE {mode!r} (use join, create or single)", file=sys.stderr)
    return 2


if __name__ == "__main__":
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    sys.exit(asyncio.run(main()))
