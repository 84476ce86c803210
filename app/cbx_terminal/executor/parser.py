"""
Lightweight command string inspection.

This is not a shell-grammar parser. It only extracts what the policy and
the meta-command dispatcher need: the leading token, the meta-command
name/argument split, and whether the text composes several commands.
"""

import shlex


def tokenize(command: str) -> list[str]:
    """
    Split a command string into shell-like tokens.

    Malformed input (unclosed quotes, etc.) falls back to whitespace
    splitting rather than raising.
    """
    try:
        return shlex.split(command)
    except ValueError:
        return command.split()


def leading_token(command: str) -> str:
    """
    Return the first token of a command, or "" for blank input.

    Examples:
        >>> leading_token("git status --short")
        'git'
        >>> leading_token("   ")
        ''
    """
    tokens = tokenize(command.strip())
    return tokens[0] if tokens else ""


def split_meta_command(command: str) -> tuple[str, str]:
    """
    Split "<name> <argument>" at the first run of whitespace.

    The argument keeps its internal spacing so multi-word search queries
    survive intact.

    Examples:
        >>> split_meta_command("ai-search connection pool")
        ('ai-search', 'connection pool')
    """
    parts = command.strip().split(maxsplit=1)
    if not parts:
        return "", ""
    if len(parts) == 1:
        return parts[0], ""
    return parts[0], parts[1].strip()


def is_composite_command(command: str) -> bool:
    """
    Check if command contains unquoted pipe, chaining or substitution operators.

    Note: quoting is tracked naively and escapes are ignored. The result is
    informational only; classification never relies on it.
    """
    in_single_quote = False
    in_double_quote = False

    for i, char in enumerate(command):
        if char == "'" and not in_double_quote:
            in_single_quote = not in_single_quote
        elif char == '"' and not in_single_quote:
            in_double_quote = not in_double_quote
        elif in_single_quote:
            continue
        elif char == "`" or command.startswith("$(", i):
            return True
        elif not in_double_quote and char in "|;&":
            return True

    return False
