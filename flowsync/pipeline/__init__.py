from flowsync.pipeline.briefing import (
    BriefingComposer,
    BriefingScript,
    greeting_for,
    select_briefing_items,
    truncate_at_sentence,
)
from flowsync.pipeline.classify import ClassificationResult, Label, PriorityClassifier, apply_classification
from flowsync.pipeline.decompose import DecompositionResult, TaskDecomposer
from flowsync.pipeline.persist import PersistenceCoordinator, PersistResult
from flowsync.pipeline.runner import (
    BriefingArtifact,
    BriefingRunner,
    SubscriberProcessor,
    link_delivery_target,
    run_all,
)

__all__ = [
    "BriefingArtifact",
    "BriefingComposer",
    "BriefingRunner",
    "BriefingScript",
    "ClassificationResult",
    "DecompositionResult",
    "Label",
    "PersistResult",
    "PersistenceCoordinator",
    "PriorityClassifier",
    "SubscriberProcessor",
    "TaskDecomposer",
    "apply_classification",
    "greeting_for",
    "link_delivery_target",
    "run_all",
    "select_briefing_items",
    "truncate_at_sentence",
]
