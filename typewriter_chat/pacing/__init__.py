"""打字机式的显示节奏调度。"""

from typewriter_chat.pacing.scheduler import RevealScheduler, SchedulerPhase

__all__ = ["RevealScheduler", "SchedulerPhase"]
