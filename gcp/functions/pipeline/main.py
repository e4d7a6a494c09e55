# Cloud Run Functions (Gen2) – scrape / classify / materialize pipeline
# Deploy one function per entry point, e.g.:
# gcloud functions deploy scrape-webhook \
#   --gen2 \
#   --region=us-central1 \
#   --runtime=python313 \
#   --source=. \
#   --entry-point=scrape_webhook \
#   --trigger-http --allow-unauthenticated
#
# Scheduled entry points take a Pub/Sub trigger fed by Cloud Scheduler:
# gcloud functions deploy auto-classify-runs --gen2 --entry-point=scheduled_auto_classify \
#   --trigger-topic=auto-classify-every-5m ...

import os
import sys

# Ensure repo root is on path so event_curation is importable when deployed from here
_here = os.path.dirname(os.path.abspath(__file__))
_root = os.path.abspath(os.path.join(_here, "..", "..", ".."))
if _root not in sys.path:
    sys.path.insert(0, _root)

from event_curation.app.handlers import (  # noqa: E402,F401
    auto_classify_runs,
    classify_run,
    delete_classification_item,
    delete_polling_log,
    delete_run,
    get_run_results,
    list_runs,
    poll_scrape_runs,
    process_classified_run,
    reject_scraped_items,
    retry_classify_item,
    schedule_scrape,
    scheduled_auto_classify,
    scheduled_poll,
    scheduled_scrapes,
    scrape_webhook,
    start_instagram_scraper,
    start_instagram_stories_scraper,
)
