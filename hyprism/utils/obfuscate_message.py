"""
This module is to be used with loguru to remove potentially sensitive information such as the user's name.
"""

import re


def obfuscate_message(
    message: str, anonymize_path: bool = True, anonymize_launch_identity: bool = True
) -> str:
    """
    Obfuscate the message such that it does not reveal user information.

    The message may contain a path, in which case the path will be anonymized.
    It may also contain a client launch command line, in which case the offline
    player name and account id are masked.

    Args:
        message: The message to obfuscate.
        anonymize_path: Whether to anonymize the path in the message.
        anonymize_launch_identity: Whether to mask `--name` and `--uuid` values.

    Returns:
        The obfuscated message.
    """
    if anonymize_path:
        message = _anonymize_path(message)
    if anonymize_launch_identity:
        message = _anonymize_launch_identity(message)

    return message


def _anonymize_path(message: str) -> str:
    """
    Anonymize the path in the message such that
    it does not reveal user information such as usernames.

    The input message may or may not contain a path at all.

    OS agnostic.
    """
    # Windows - Only remove the username, keep the drive letter
    message = re.sub(r"([A-Z]:\\Users\\)[^\\]+\\", r"\1...\\", message)
    # macOS
    message = re.sub(r"/Users/[^/]+/", r"/Users/.../", message)
    # Linux - Only remove the username
    message = re.sub(r"/home/[^/]+/", r"/home/.../", message)

    return message


def _anonymize_launch_identity(message: str) -> str:
    # Launch arguments may be logged as a list repr or as a joined command line
    message = re.sub(r"(--(?:name|uuid)', ')[^']*'", r"\1...'", message)
    message = re.sub(r"(--(?:name|uuid)[ =])(?!')\S+", r"\1...", message)
    return message
