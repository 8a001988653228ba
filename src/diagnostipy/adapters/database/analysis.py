"""Analysis run when the request's database work is finished."""

import logging
from dataclasses import dataclass, field

from diagnostipy.adapters.database.monitor import QueryMonitor
from diagnostipy.core.config import DebugConfig
from diagnostipy.core.models import ExplainRow, QueryRecord
from diagnostipy.core.ports import ExplainPort
from diagnostipy.core.queries import collect_explains

logger = logging.getLogger(__name__)


@dataclass
class DatabaseAnalysis:
    queries: tuple[QueryRecord, ...] = ()
    explains: dict[int, tuple[ExplainRow, ...]] = field(default_factory=dict)
    profiles: dict[int, list[ExplainRow]] = field(default_factory=dict)
    profile_notice: str | None = None


def collect_analysis(
    monitor: QueryMonitor,
    explainer: ExplainPort | None,
    config: DebugConfig,
) -> DatabaseAnalysis:
    """Stop the monitor and gather EXPLAIN and profile rows for its queries.

    Failures never propagate: EXPLAIN errors become error rows of the query
    concerned and profiling problems become an informational notice.
    """
    monitor.stop()
    analysis = DatabaseAnalysis(queries=monitor.records)
    if explainer is None:
        return analysis

    if config.query_explains:
        analysis.explains = collect_explains(
            analysis.queries, explainer.explain, include_dml=explainer.supports_dml
        )

    if config.query_profiles:
        try:
            profiles = explainer.profiles()
        except Exception as e:
            logger.warning("Query profiling failed: %s", e)
            analysis.profile_notice = f"Query profiling failed: {e}"
        else:
            if profiles is None:
                analysis.profile_notice = (
                    f"Query profiling is not supported by {type(explainer).__name__}"
                )
            else:
                analysis.profiles = profiles
    return analysis
