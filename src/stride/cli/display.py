"""Rich rendering for the CLI.

Threaded chat as a :class:`rich.tree.Tree` and workout recommendations
as a table.  Accepts an optional :class:`~rich.console.Console` for
dependency injection in tests.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.table import Table
from rich.text import Text
from rich.tree import Tree

from stride.chat.content import strip_image_refs

if TYPE_CHECKING:
    from collections.abc import Sequence

    from stride.chat.tree import ChatMessage, MessageTree
    from stride.fitness.progress import ProgressStats
    from stride.fitness.recommendations import ScoredWorkout

_SNIPPET_LEN = 120


def _snippet(text: str, limit: int = _SNIPPET_LEN) -> str:
    """First line of *text*, truncated to *limit* characters."""
    line = text.strip().splitlines()[0] if text.strip() else ""
    if len(line) <= limit:
        return line
    return line[:limit].rstrip() + " ..."


def _message_label(message: ChatMessage) -> Text:
    votes = message.vote_count
    style = "green" if votes > 0 else "red" if votes < 0 else "dim"
    label = Text()
    label.append(f"{votes:+d} ", style=style)
    label.append(message.author_name or message.user_id[:8], style="bold")
    label.append(f"  {message.created_at:%Y-%m-%d %H:%M}  ", style="dim")
    label.append(_snippet(strip_image_refs(message.content)))
    if message.image_url:
        label.append("  [image]", style="cyan")
    return label


class ChatDisplay:
    """Rich output for chat and training commands."""

    def __init__(self, console: Console | None = None) -> None:
        self._console = console or Console()

    def show_thread_tree(self, channel: str, tree: MessageTree) -> None:
        """Print the channel as a tree of threads in the tree's sort order."""
        if len(tree) == 0:
            self._console.print(f"No messages in #{channel}.")
            return

        root = Tree(
            f"[bold]#{channel}[/bold]  [dim]{len(tree)} messages, "
            f"sorted by {tree.sort.value}[/dim]"
        )
        # Parent branch for each depth along the current path.
        branches: list[Tree] = [root]
        for depth, message in tree.walk():
            del branches[depth + 1 :]
            branch = branches[depth].add(_message_label(message))
            branches.append(branch)
        self._console.print(root)

    def show_recommendations(
        self, level: str, picks: Sequence[ScoredWorkout]
    ) -> None:
        if not picks:
            self._console.print("No workouts to recommend yet.")
            return
        table = Table(title=f"Recommended workouts ({level})")
        table.add_column("Score", justify="right", style="bold")
        table.add_column("Workout")
        table.add_column("Difficulty")
        table.add_column("Minutes", justify="right")
        for pick in picks:
            w = pick.workout
            table.add_row(
                str(pick.score),
                w.title,
                w.difficulty,
                str(round(w.duration_seconds / 60)),
            )
        self._console.print(table)

    def show_stats(self, stats: ProgressStats) -> None:
        self._console.print(
            f"Workouts: {stats.total_workouts}  "
            f"Streak: {stats.current_streak} (best {stats.best_streak})"
        )
