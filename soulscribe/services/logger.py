"""
SoulScribe Logging System

Clean terminal output for chapter runs + detailed file logging for debugging.

Terminal lines go through the "soulscribe" stdlib logger, so callers and tests
capture them like any other log record. Structured debug records are written
as JSONL, one file per enabled channel:

    DEBUG_AGENT_IO=true    -> agent_io_<ts>.jsonl   (prompts and outputs)
    DEBUG_STORAGE=true     -> storage_<ts>.jsonl    (chapter store writes)
    DEBUG_API_CALLS=true   -> api_calls_<ts>.jsonl  (LLM token usage)
"""

import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

# channel name -> Settings flag that enables it
DEBUG_CHANNELS = {
    "agent_io": "debug_agent_io",
    "storage": "debug_storage",
    "api_calls": "debug_api_calls",
}


class SoulScribeLogger:
    """
    Application logger for chapter runs.

    - Terminal: timestamped key events (run, job, agent)
    - Debug file: every event with its data, when ``debug_mode`` is on
    - JSONL channels: structured records, per Settings debug flags
    """

    def __init__(self, debug_mode: bool = False, settings=None):
        self.debug_mode = debug_mode
        self.settings = settings
        self.terminal = logging.getLogger("soulscribe")
        self._file_logger: Optional[logging.Logger] = None
        self._channels: Dict[str, Path] = {}

        run_stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        enabled = [name for name, flag in DEBUG_CHANNELS.items() if getattr(settings, flag, False)]
        if enabled:
            channel_dir = Path(settings.debug_log_dir)
            channel_dir.mkdir(parents=True, exist_ok=True)
            self._channels = {name: channel_dir / f"{name}_{run_stamp}.jsonl" for name in enabled}

        if debug_mode:
            self._open_debug_file(Path("logs") / f"soulscribe_debug_{run_stamp}.txt")

    def _open_debug_file(self, log_file: Path):
        log_file.parent.mkdir(exist_ok=True)
        handler = logging.FileHandler(log_file)
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(
            '%(asctime)s | %(levelname)s | %(name)s | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
        self._file_logger = logging.getLogger("soulscribe_debug")
        self._file_logger.setLevel(logging.DEBUG)
        self._file_logger.addHandler(handler)
        self.terminal.info(f"📝 Debug mode enabled. Logging to: {log_file}")

    def _event(self, emoji: str, component: str, message: str, level: int = logging.INFO,
               detail: Optional[str] = None, **data):
        """One terminal line plus, in debug mode, the same event with its data"""
        self.terminal.log(level, f"[{datetime.now():%H:%M:%S}] {emoji} {message}")
        self._file_record(level, component, detail or message, data)

    def _file_record(self, level: int, component: str, message: str, data: Optional[dict] = None):
        if self._file_logger is None:
            return
        line = f"{component} | {message}"
        if data:
            line += f" | Data: {data}"
        self._file_logger.log(level, line)

    def channel_enabled(self, channel: str) -> bool:
        return channel in self._channels

    def _record(self, channel: str, record_type: str, **fields):
        """Append one JSONL record to a debug channel"""
        log_file = self._channels.get(channel)
        if log_file is None:
            return
        entry = {"timestamp": datetime.now().isoformat(), "type": record_type, **fields}
        try:
            with open(log_file, 'a') as f:
                f.write(json.dumps(entry, default=str) + '\n')
        except OSError as e:
            self.error("LOGGER", f"Failed to write {channel} record", e)

    @staticmethod
    def _preview(data: Any, max_length: int = 500) -> str:
        text = str(data)
        if len(text) <= max_length:
            return text
        return f"{text[:max_length]}... ({len(text)} chars total)"

    # ===== Run and job events =====

    def run_started(self, story_id: str, job_count: int, max_concurrency: int):
        self._event("🚀", "RUN",
                    f"Starting chapter run for story {story_id[:8]}: "
                    f"{job_count} chapters, max concurrency {max_concurrency}",
                    detail="Started", story_id=story_id, job_count=job_count,
                    max_concurrency=max_concurrency)

    def run_completed(self, story_id: str, succeeded: int, failed: int, duration: float):
        self._event("🏁", "RUN",
                    f"Chapter run finished for story {story_id[:8]}: "
                    f"{succeeded} succeeded, {failed} failed in {duration:.1f}s",
                    detail="Completed", story_id=story_id, succeeded=succeeded,
                    failed=failed, duration=duration)

    def job_received(self, job_id: int, title: str, details: str = ""):
        """Log when a chapter job is admitted"""
        suffix = f" - {details}" if details else ""
        self._event("🎬", "JOB", f"Starting Chapter {job_id}: \"{title}\"{suffix}",
                    detail=f"Admitted chapter {job_id}", job_id=job_id, title=title)

    def job_retrying(self, job_id: int, attempt: int, max_attempts: int, reason: str):
        self._event("🔄", "JOB", f"Chapter {job_id} retrying ({attempt}/{max_attempts}): {reason}",
                    logging.WARNING, detail=f"Retry chapter {job_id}",
                    job_id=job_id, attempt=attempt, reason=reason)

    def job_completed(self, job_id: int, quality: float, duration: Optional[float] = None):
        """Log when a chapter job completes"""
        took = f" in {duration:.1f}s" if duration else ""
        self._event("✅", "JOB", f"Chapter {job_id} completed! Quality: {quality:.2f}{took}",
                    detail=f"Completed chapter {job_id}", job_id=job_id,
                    quality=quality, duration=duration)

    def job_failed(self, job_id: int, error: str):
        self._event("❌", "JOB", f"Chapter {job_id} failed: {error}", logging.ERROR,
                    detail=f"Failed chapter {job_id}", job_id=job_id, error=error)

    # ===== Agent events =====

    def agent_working(self, agent_name: str, task: str):
        self._event("⚙️", "AGENT", f"{agent_name} working: {task}",
                    detail=f"{agent_name} started task", task=task)

    def agent_completed(self, agent_name: str, task: str, duration: Optional[float] = None):
        took = f" ({duration:.1f}s)" if duration else ""
        self._event("✓", "AGENT", f"{agent_name} completed: {task}{took}",
                    detail=f"{agent_name} completed task", task=task, duration=duration)

    def agent_input(self, agent_name: str, prompt: str, job_id: Optional[int] = None):
        """Record the prompt an agent receives (agent_io channel)"""
        if not self.channel_enabled("agent_io"):
            return
        self._event("📥", "AGENT", f"{agent_name} INPUT ({len(prompt)} chars)")
        self._record("agent_io", "agent_input", agent=agent_name, job_id=job_id,
                     prompt=self._preview(prompt))

    def agent_output(self, agent_name: str, output: Any, status: str = "success",
                     duration: Optional[float] = None, job_id: Optional[int] = None):
        """Record what an agent produced (agent_io channel)"""
        if not self.channel_enabled("agent_io"):
            return
        size = len(str(output)) if output else 0
        took = f" in {duration:.1f}s" if duration else ""
        self._event("✅" if status == "success" else "❌", "AGENT",
                    f"{agent_name} OUTPUT: {status} ({size} chars){took}")
        self._record("agent_io", "agent_output", agent=agent_name, job_id=job_id, status=status,
                     output_preview=self._preview(output, 300), output_size=size,
                     duration_seconds=duration)

    # ===== Services =====

    def storage_operation(self, operation: str, path: str, data_summary: str,
                          size_bytes: int = 0, duration: Optional[float] = None):
        if not self.channel_enabled("storage"):
            return
        took = f" in {duration * 1000:.0f}ms" if duration else ""
        self._event("💾", "STORAGE", f"Storage {operation.upper()} → {path} ({size_bytes} bytes){took}")
        self._record("storage", "storage_operation", operation=operation, path=path,
                     data_summary=data_summary, size_bytes=size_bytes, duration_seconds=duration)

    def llm_api_call(self, provider: str, model: str, prompt_tokens: int = 0,
                     completion_tokens: int = 0, latency: Optional[float] = None,
                     status: str = "success"):
        """Record token usage for one LLM call (api_calls channel)"""
        if not self.channel_enabled("api_calls"):
            return
        total = prompt_tokens + completion_tokens
        took = f" in {latency:.1f}s" if latency else ""
        self._event("🤖" if status == "success" else "⚠️", "API",
                    f"API {provider}/{model}: {total} tokens{took}")
        self._record("api_calls", "llm_api_call", provider=provider, model=model,
                     prompt_tokens=prompt_tokens, completion_tokens=completion_tokens,
                     total_tokens=total, latency_seconds=latency, status=status)

    # ===== General =====

    def error(self, component: str, message: str, error: Exception = None):
        kind = f" ({type(error).__name__})" if error else ""
        self._event("⚠️", component, f"Error in {component}: {message}{kind}", logging.ERROR,
                    detail=message,
                    error_type=type(error).__name__ if error else None,
                    error_message=str(error) if error else None)

    def info(self, message: str):
        self._event("ℹ️", "SYSTEM", message)

    def warning(self, message: str):
        self._event("⚠️", "SYSTEM", message, logging.WARNING)

    def debug(self, component: str, message: str, data: Optional[dict] = None):
        """Debug-file only"""
        self._file_record(logging.DEBUG, component, message, data)


_logger: Optional[SoulScribeLogger] = None


def get_logger(settings=None) -> SoulScribeLogger:
    """Shared application logger; DEBUG_MODE=true turns on the debug file"""
    global _logger
    if _logger is None:
        debug_mode = os.getenv("DEBUG_MODE", "false").lower() == "true"
        _logger = SoulScribeLogger(debug_mode=debug_mode, settings=settings)
    return _logger


def init_logger(debug_mode: bool = False, settings=None) -> SoulScribeLogger:
    """Replace the shared logger, e.g. at script startup with loaded Settings"""
    global _logger
    _logger = SoulScribeLogger(debug_mode=debug_mode, settings=settings)
    return _logger
