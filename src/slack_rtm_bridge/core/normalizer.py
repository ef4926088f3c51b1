"""Decode Slack message markup into plain text.

Slack encodes mentions, channel references and links as bracketed
tokens (https://api.slack.com/reference/surfaces/formatting):

    <@U024BE7LH>            user mention
    <@U024BE7LH|bob>        user mention with label
    <#C024BE7LR|general>    channel reference
    <!channel>              special mention
    <https://example.com|x> link with label
    <mailto:bob@x.com|bob>  mail link

and escapes ``<``, ``>`` and ``&`` as HTML entities. The normalizer turns
all of that into the text a human would read.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..models.entities import Room, User

UserLookup = Callable[[str], "User | None"]
RoomLookup = Callable[[str], "Room | None"]

LINK_PATTERN = re.compile(
    r"""
    <                       # opening bracket
    (?P<type>[@\#!])?       # optional type sigil
    (?P<link>[^>|]+)        # link, user id, channel id or keyword
    (?:\|                   # optional |label
        (?P<label>[^>]+)
    )?
    >                       # closing bracket
    """,
    re.VERBOSE,
)

SPECIAL_MENTIONS = frozenset({"channel", "group", "everyone"})

# Order matters: &amp; last so "&amp;lt;" decodes to "&lt;", not "<".
HTML_ENTITIES = (
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&amp;", "&"),
)


def unescape(text: str) -> str:
    """Decode the three entities Slack escapes in message text."""
    for entity, char in HTML_ENTITIES:
        text = text.replace(entity, char)
    return text


class TextNormalizer:
    """Turns raw Slack message text into the plain body the framework sees.

    Example:
        normalizer = TextNormalizer(resolver.find_user, resolver.find_channel)
        normalizer.normalize("hi <@U123>", robot_id="UBOT", robot_mention="lita")
    """

    def __init__(self, find_user: UserLookup, find_room: RoomLookup) -> None:
        """Initialize the normalizer.

        Args:
            find_user: Returns a known user by id, or None. Must not create.
            find_room: Returns a known room by id, or None. Must not create.
        """
        self._find_user = find_user
        self._find_room = find_room

    def normalize(
        self,
        text: str | None,
        attachments: Iterable[dict[str, Any]] = (),
        robot_id: str | None = None,
        robot_mention: str | None = None,
    ) -> str:
        """Build the message body from text and attachments.

        Args:
            text: Raw message text, possibly None.
            attachments: Attachment payloads; each contributes its ``text``,
                or ``fallback`` when there is no text.
            robot_id: The bot's own user id.
            robot_mention: The bot's mention name. A leading ``<@robot_id>``
                is rewritten to ``@robot_mention`` so the framework sees the
                message as addressed to it.

        Returns:
            The decoded text and attachment lines joined by newlines, or an
            empty string when there is nothing to show.
        """
        pieces: list[str | None] = []

        if text is not None:
            if robot_id and robot_mention:
                text = self._address_robot(text, robot_id, robot_mention)
            pieces.append(self.remove_formatting(text))

        for attachment in attachments:
            pieces.append(attachment.get("text") or attachment.get("fallback"))

        return "\n".join(piece for piece in pieces if piece)

    @staticmethod
    def _address_robot(text: str, robot_id: str, robot_mention: str) -> str:
        pattern = re.compile(rf"^\s*<@{re.escape(robot_id)}>")
        return pattern.sub(lambda _: f"@{robot_mention}", text, count=1)

    def remove_formatting(self, text: str) -> str:
        """Replace every bracketed token, then decode HTML entities."""
        return unescape(LINK_PATTERN.sub(self._replace_link, text))

    def _replace_link(self, match: re.Match[str]) -> str:
        sigil = match.group("type")
        link = match.group("link")
        label = match.group("label")

        if sigil == "@":
            return label if label else self._user_mention(link)
        if sigil == "#":
            return f"#{label}" if label else self._room_reference(link)
        if sigil == "!":
            return f"@{link}" if link in SPECIAL_MENTIONS else ""
        return self._url(link, label)

    def _user_mention(self, user_id: str) -> str:
        user = self._find_user(user_id)
        return f"@{user.mention_name}" if user else f"@{user_id}"

    def _room_reference(self, room_id: str) -> str:
        room = self._find_room(room_id)
        return f"#{room.name}" if room else f"#{room_id}"

    @staticmethod
    def _url(link: str, label: str | None) -> str:
        if link.startswith("mailto:"):
            link = link[len("mailto:") :]
        if label and label not in link:
            return f"{label} ({link})"
        return label if label else link
