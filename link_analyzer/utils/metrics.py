from prometheus_client import Counter, Histogram, Info

from link_analyzer import __version__

# Pipeline metrics
tasks_counter = Counter(
    "link_tasks_total",
    "Total URL tasks handled by the pipeline",
    ["platform", "status"],
)

scrape_attempts_counter = Counter(
    "scrape_attempts_total",
    "Scrape attempts by extractor and outcome",
    ["extractor", "outcome"],
)

analysis_counter = Counter(
    "analysis_requests_total",
    "Model analysis requests by outcome",
    ["outcome"],
)

analysis_duration = Histogram(
    "analysis_duration_seconds",
    "Wall-clock inference time",
    buckets=(1, 5, 10, 20, 30, 60, 120, 300),
)

task_duration = Histogram(
    "link_task_duration_seconds",
    "End-to-end task time",
    ["status"],
)

# System info
system_info = Info(
    "link_analyzer_info",
    "System information",
)


def setup_metrics(model: str) -> None:
    """Initialize system metrics."""
    system_info.info({
        "version": __version__,
        "service": "link-analyzer",
        "model": model,
    })
