"""Construction and interior workflows built on single generations."""

from genstudio.workflows.composer import AutoMergeWatcher, MergeState, WorkflowComposer, WorkflowRun
from genstudio.workflows.merge import FfmpegJoiner, VideoConcatenator, VideoJoiner

__all__ = [
    "AutoMergeWatcher",
    "FfmpegJoiner",
    "MergeState",
    "VideoConcatenator",
    "VideoJoiner",
    "WorkflowComposer",
    "WorkflowRun",
]
