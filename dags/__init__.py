"""
Airflow DAGs for the Japanese Real Estate harvester.

DAGs:
    harvest_dag: Listing crawl, detail enrichment and statistics.
"""
