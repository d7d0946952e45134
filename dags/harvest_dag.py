"""
Airflow DAG for harvesting listings and their detail pages.

This DAG runs the two crawl modes one after the other and finally logs the
harvest statistics.

DAG Structure:
    crawl_listings -> enrich_details -> log_statistics

The listing crawl resumes after the last completed result page, and the
enrichment only selects unprocessed listings, so a retried or re-triggered
run continues where the previous one stopped.

Author: Leonardo Pacciani-Mori
License: MIT
"""

import os

from airflow.operators.python import PythonOperator

from dag_utils import create_dag_with_defaults, log_statistics_task, run_harvest_task
from japanese_real_estate.config.settings import MODE_DETAILS, MODE_LISTINGS


# =============================================================================
# DAG DEFINITION
# =============================================================================

# Manual trigger only unless HARVEST_SCHEDULE is set (e.g. "0 3 * * *").
HARVEST_SCHEDULE = os.getenv("HARVEST_SCHEDULE", "").strip() or None

dag = create_dag_with_defaults(
    dag_id="suumo_harvest_DAG",
    description="DAG to crawl listing pages into MongoDB and enrich them with detail pages",
    schedule=HARVEST_SCHEDULE,
)


# =============================================================================
# TASK DEFINITIONS
# =============================================================================

crawl_listings = PythonOperator(
    task_id="crawl_listings",
    python_callable=run_harvest_task,
    op_kwargs={"mode": MODE_LISTINGS},
    dag=dag,
)

enrich_details = PythonOperator(
    task_id="enrich_details",
    python_callable=run_harvest_task,
    op_kwargs={"mode": MODE_DETAILS},
    dag=dag,
)

log_statistics = PythonOperator(
    task_id="log_statistics",
    python_callable=log_statistics_task,
    dag=dag,
)

crawl_listings >> enrich_details >> log_statistics
