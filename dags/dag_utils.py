"""
Shared utilities for Airflow DAG definitions.

This module provides the factory function and the task callables used by
the harvester DAG, so that the DAG file itself only declares the task
graph.

Author: Leonardo Pacciani-Mori
License: MIT
"""

from datetime import datetime, timedelta, timezone

from airflow import DAG
from airflow.exceptions import AirflowException


# =============================================================================
# DEFAULT DAG ARGUMENTS
# =============================================================================

# Default arguments applied to all DAGs of the harvester.
# These can be overridden when creating individual DAGs.
DAG_DEFAULT_ARGS = {
    # Owner name for tracking and filtering in the Airflow UI
    "owner": "Leonardo Pacciani-Mori",

    # Start date for the DAG schedule (today, at midnight UTC)
    "start_date": datetime.now(timezone.utc).replace(
        hour=0, minute=0, second=0, microsecond=0
    ),

    # Crawls are strictly sequential: one request at a time
    "max_active_tasks": 1,

    # A crawl resumes where it stopped, so retries do not repeat work
    "retries": 2,

    # How long to wait between retry attempts
    "retry_delay": timedelta(minutes=10),

    # Email settings for failure notifications (configure as needed)
    "email_on_failure": False,
    "email_on_retry": False,
}


def create_dag_with_defaults(
    dag_id: str,
    description: str,
    schedule: str = None,
    max_active_tasks: int = None,
    **kwargs
) -> DAG:
    """
    Create a DAG with standardized default configuration.

    Args:
        dag_id: A unique identifier for the DAG.
        description: A human-readable description of what the DAG does.
        schedule: The schedule interval for automatic runs. Use None for
            manual-only DAGs, or cron expressions like "0 3 * * *" for daily.
        max_active_tasks: Override the default maximum concurrent tasks.
        **kwargs: Additional default_args entries. These override the
            defaults if there are conflicts.

    Returns:
        DAG: A configured Airflow DAG instance ready for task definitions.

    Example:
        >>> dag = create_dag_with_defaults(
        ...     dag_id="suumo_harvest_DAG",
        ...     description="Daily listing crawl and detail enrichment",
        ...     schedule="0 3 * * *"
        ... )
    """
    dag_args = DAG_DEFAULT_ARGS.copy()

    if max_active_tasks is not None:
        dag_args["max_active_tasks"] = max_active_tasks

    dag_args.update(kwargs)

    dag_max_active_tasks = dag_args.pop("max_active_tasks", None)

    dag_kwargs = dict(
        dag_id=dag_id,
        default_args=dag_args,
        description=description,
        schedule=schedule,
        catchup=False,  # Don't backfill historical runs
        max_active_runs=1,
    )
    if dag_max_active_tasks is not None:
        dag_kwargs["max_active_tasks"] = dag_max_active_tasks

    return DAG(**dag_kwargs)


# =============================================================================
# TASK CALLABLES
# =============================================================================

def run_harvest_task(mode: str) -> dict:
    """
    Run one harvest mode as an Airflow task.

    A run that ended on a fatal error fails the task, so that Airflow's
    retry policy applies.

    Args:
        mode: "listings" or "details".

    Returns:
        dict: The run summary's counters (pushed to XCom).

    Raises:
        AirflowException: If the run recorded a fatal error.
    """
    from dataclasses import asdict
    from japanese_real_estate.scraping.harvest import run_harvest

    summary = run_harvest(mode)
    if summary.fatal_error:
        raise AirflowException(f"Harvest ({mode}) failed: {summary.fatal_error}")

    counters = asdict(summary)
    counters.pop("outcomes", None)
    return counters


def log_statistics_task() -> dict:
    """Log the harvest statistics as an Airflow task."""
    from japanese_real_estate.core.connections import (
        get_harvest_collections,
        mongodb_connection,
    )
    from japanese_real_estate.scraping.harvest import log_harvest_statistics

    with mongodb_connection() as client:
        return log_harvest_statistics(get_harvest_collections(client))
