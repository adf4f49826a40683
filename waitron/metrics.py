"""Prometheus metrics for Waitron."""

from prometheus_client import Counter, Gauge

BUILDS_REQUESTED = Counter(
    "waitron_builds_requested_total",
    "Builds put into build mode",
    ["mode"],
)

BUILDS_REPLACED = Counter(
    "waitron_builds_replaced_total",
    "Active builds abandoned by a new build request for the same hostname",
)

BUILDS_FINISHED = Counter(
    "waitron_builds_finished_total",
    "Builds taken out of build mode",
    ["outcome"],
)

ACTIVE_BUILDS = Gauge(
    "waitron_active_builds",
    "Machines currently in build mode",
)

HOOK_RUNS = Counter(
    "waitron_hook_runs_total",
    "Hook script executions",
    ["phase", "result"],
)

TEMPLATES_RENDERED = Counter(
    "waitron_templates_rendered_total",
    "Installer templates rendered",
    ["template", "result"],
)

BOOT_DESCRIPTORS_SERVED = Counter(
    "waitron_boot_descriptors_total",
    "Boot descriptor requests",
    ["result"],
)

STALE_BUILDS_DETECTED = Counter(
    "waitron_stale_builds_detected_total",
    "Builds found exceeding their stale threshold",
)

RECOVERY_COMMANDS = Counter(
    "waitron_recovery_commands_total",
    "Stale build recovery command executions",
    ["result"],
)
