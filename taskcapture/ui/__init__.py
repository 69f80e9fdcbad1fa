"""Terminal user interface helpers."""

from .console import NoticeConsole, render_status

__all__ = ['NoticeConsole', 'render_status']
