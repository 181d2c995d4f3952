"""Static platform and workflow configuration.

Built once at startup by ``build_registry`` and stored on ``app.state``; request
handlers receive it through the ``get_registry`` dependency.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

from fastapi import Request

from publishdesk.core.config import Settings
from publishdesk.domain.models.publish_task import PublishPlatform


@dataclass(frozen=True)
class PlatformConfig:
    platform: PublishPlatform
    display_name: str
    requires_live_token: bool = False


@dataclass(frozen=True)
class WorkflowDefinition:
    id: str
    sop_id: str
    name: str
    description: str
    phase: str
    trigger_type: str
    trigger_config: str | None = None


@dataclass(frozen=True)
class PhaseConfig:
    label: str
    description: str


@dataclass(frozen=True)
class Registry:
    platforms: Mapping[PublishPlatform, PlatformConfig]
    workflows: tuple[WorkflowDefinition, ...]
    phases: Mapping[str, PhaseConfig]
    publish_workflow_name: str

    def platform(self, platform: PublishPlatform | str) -> PlatformConfig:
        return self.platforms[PublishPlatform(platform)]

    def workflow(self, workflow_id: str) -> WorkflowDefinition | None:
        return next((item for item in self.workflows if item.id == workflow_id), None)


PLATFORM_CONFIGS = (
    PlatformConfig(platform=PublishPlatform.INSTAGRAM, display_name="Instagram"),
    PlatformConfig(platform=PublishPlatform.THREADS, display_name="Threads"),
    PlatformConfig(
        platform=PublishPlatform.YOUTUBE,
        display_name="YouTube",
        requires_live_token=True,
    ),
)

WORKFLOW_DEFINITIONS = (
    WorkflowDefinition("sop-01-anilist-sync", "SOP-01", "AniList season sync", "Weekly sync of the current season from AniList", "content_production", "schedule", "Mondays 09:00 UTC"),
    WorkflowDefinition("sop-01-ann-rss", "SOP-01", "ANN RSS feed", "Anime News Network news subscription", "content_production", "schedule", "Every 4 hours"),
    WorkflowDefinition("sop-02-reddit-monitor", "SOP-02", "Reddit heat monitor", "Tracks r/anime discussion heat", "content_production", "schedule", "Daily 05:00"),
    WorkflowDefinition("sop-02-google-trends", "SOP-02", "Google Trends tracker", "Tracks anime search trends", "content_production", "schedule", "Daily 04:00"),
    WorkflowDefinition("sop-03-topic-scoring", "SOP-03", "Topic scoring", "Scores topics for commercial value and feasibility", "content_production", "webhook"),
    WorkflowDefinition("sop-04-content-generate", "SOP-04", "Content generation", "Drafts posts and video scripts", "content_production", "webhook"),
    WorkflowDefinition("sop-04-image-generate", "SOP-04", "Image generation", "Generates artwork for drafts", "content_production", "webhook"),
    WorkflowDefinition("sop-05-content-adapt", "SOP-05", "Multi-platform adaptation", "Converts content into per-platform formats", "content_distribution", "webhook"),
    WorkflowDefinition("sop-05-publish-content", "SOP-05", "Content publishing", "Uploads a publish task to its target platforms", "content_distribution", "webhook"),
    WorkflowDefinition("sop-06-schedule-publish", "SOP-06", "Scheduled publishing", "Runs publish tasks whose schedule time has arrived", "content_distribution", "schedule", "Every minute"),
    WorkflowDefinition("sop-07-data-collect", "SOP-07", "Metrics collection", "Collects per-platform content performance", "content_distribution", "schedule", "Every 6 hours"),
    WorkflowDefinition("sop-08-message-classify", "SOP-08", "Message triage", "Classifies inbound messages by type and priority", "user_interaction", "webhook"),
    WorkflowDefinition("sop-08-auto-reply", "SOP-08", "Auto reply", "Answers common questions", "user_interaction", "webhook"),
    WorkflowDefinition("sop-09-lead-scoring", "SOP-09", "Lead scoring", "Scores purchase intent", "user_interaction", "webhook"),
    WorkflowDefinition("sop-09-guide-reply", "SOP-09", "Guided replies", "Generates personalised store referral replies", "user_interaction", "webhook"),
    WorkflowDefinition("sop-10-sentiment-alert", "SOP-10", "Sentiment alerts", "Detects negative comments and raises alerts", "user_interaction", "webhook"),
    WorkflowDefinition("sop-11-koc-discover", "SOP-11", "KOC discovery", "Finds potential creator partners", "conversion_loop", "schedule", "Daily"),
    WorkflowDefinition("sop-11-invite-template", "SOP-11", "Invite templates", "Generates creator invitation templates", "conversion_loop", "webhook"),
    WorkflowDefinition("sop-12-ugc-collect", "SOP-12", "UGC collection", "Collects user generated content", "conversion_loop", "schedule", "Daily"),
    WorkflowDefinition("sop-13-attribution", "SOP-13", "Attribution", "Computes channel contribution and ROI", "conversion_loop", "schedule", "Weekly"),
    WorkflowDefinition("sop-13-weekly-report", "SOP-13", "Weekly report", "Builds the weekly operations report", "conversion_loop", "schedule", "Fridays 18:00"),
)

PHASES = {
    "content_production": PhaseConfig("Content production", "Trend monitoring, topic selection, content generation"),
    "content_distribution": PhaseConfig("Content distribution", "Platform adaptation, scheduled publishing, tracking"),
    "user_interaction": PhaseConfig("User interaction", "Message routing, intent detection, sentiment handling"),
    "conversion_loop": PhaseConfig("Conversion loop", "Creator outreach, UGC collection, attribution"),
}


def build_registry(app_settings: Settings) -> Registry:
    return Registry(
        platforms=MappingProxyType({config.platform: config for config in PLATFORM_CONFIGS}),
        workflows=WORKFLOW_DEFINITIONS,
        phases=MappingProxyType(dict(PHASES)),
        publish_workflow_name=app_settings.publish_workflow_name,
    )


def get_registry(request: Request) -> Registry:
    return request.app.state.registry
