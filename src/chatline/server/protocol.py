"""Wire text for the chat protocol.

Every line the server emits is built here so the literal strings stay in one
place. Outbound lines are newline-terminated by the writer, not by these
helpers.
"""

NAME_PROMPT = "Enter a user name: "


def welcome_line(name: str) -> str:
    return "You are " + name


def roster_line(names: list[str]) -> str:
    """Roster sent to a newly joined client.

    Each name is followed by a single space, including the last one.
    """
    return "Also here: " + "".join(name + " " for name in names)


def arrival_line(name: str) -> str:
    return name + " has arrived"


def chat_line(name: str, text: str) -> str:
    return name + ": " + text


def departure_line(name: str) -> str:
    return name + " has left"


def decode_line(line_bytes: bytes) -> str:
    """Decode a raw line from a client, dropping its terminator.

    Strips one trailing ``\\n`` and, if present, the ``\\r`` before it.
    Invalid UTF-8 is replaced rather than rejected.

    Args:
        line_bytes: Raw bytes as returned by ``StreamReader.readline()``

    Returns:
        The line text without its terminator
    """
    line = line_bytes.decode("utf-8", errors="replace")
    if line.endswith("\n"):
        line = line[:-1]
        if line.endswith("\r"):
            line = line[:-1]
    return line


def encode_line(text: str) -> bytes:
    """Encode an outbound line with its newline terminator."""
    return (text + "\n").encode("utf-8")
