"""Slash commands issued in change request comments."""

from .handlers import COMMAND_HANDLERS, CommandContext, CommandHandler, CommandName, CommandSettings, help_text
from .processor import CommandWorkItem, pending_commands, parse_command

__all__ = [
    "COMMAND_HANDLERS",
    "CommandContext",
    "CommandHandler",
    "CommandName",
    "CommandSettings",
    "CommandWorkItem",
    "help_text",
    "parse_command",
    "pending_commands",
]
