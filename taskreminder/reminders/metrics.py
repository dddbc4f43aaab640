from prometheus_client import Counter, Gauge


reminder_tasks_created_total = Counter(
    "reminder_tasks_created_total",
    "Total tasks created with a scheduled reminder",
)

runner_polls_total = Counter(
    "reminder_runner_polls_total",
    "Total job runner poll cycles",
)

jobs_claimed_total = Counter(
    "reminder_jobs_claimed_total",
    "Total jobs claimed by this process",
)

jobs_failed_total = Counter(
    "reminder_jobs_failed_total",
    "Total job executions that ended in failure",
)

jobs_in_flight = Gauge(
    "reminder_jobs_in_flight",
    "Jobs currently executing in this process",
)

reminders_dispatch_success_total = Counter(
    "reminders_dispatch_success_total",
    "Total successful WhatsApp dispatches",
)

reminders_dispatch_failed_total = Counter(
    "reminders_dispatch_failed_total",
    "Total failed WhatsApp dispatches",
)
