"""
Catalog check: run every template in the query catalog against Snowflake.
Each template is executed with its sample values and the outcome is written to a JSON report.
"""
import json
import logging
import sys
from pathlib import Path
from typing import Dict, List

import config
from database import SnowflakeAdapter
from errors import CatalogError
from runner import CatalogRunner
from template_store import TemplateStore

# Configure logging
def setup_logging(log_dir: str = config.LOG_DIR):
    """Setup logging to both file and console"""
    log_dir = Path(log_dir)
    log_dir.mkdir(exist_ok=True)

    log_file = log_dir / "catalog_check.log"

    # Create formatter
    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    # File handler
    file_handler = logging.FileHandler(log_file)
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(formatter)

    # Root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    return root_logger

logger = logging.getLogger(__name__)


def check_template(runner: CatalogRunner, template) -> Dict:
    """Run a single template with its sample values"""
    try:
        result = runner.run(template.name, template.sample_values)
        return {
            "name": template.name,
            "category": template.category,
            "question": template.question,
            "row_count": result.row_count,
            "status": "success" if result.row_count > 0 else "no_data",
        }
    except CatalogError as e:
        return {
            "name": template.name,
            "category": template.category,
            "question": template.question,
            "row_count": 0,
            "status": "error",
            "error": str(e),
        }


def check_catalog(runner: CatalogRunner, store: TemplateStore) -> List[Dict]:
    """Run every template in the store and collect one result entry per template"""
    results = []
    for template in store:
        result = check_template(runner, template)
        results.append(result)
        if result["status"] == "success":
            logger.info(f"Template {template.name}: ✓ ({result['row_count']} rows)")
        elif result["status"] == "no_data":
            logger.warning(f"Template {template.name}: no data returned")
        else:
            logger.warning(f"Template {template.name}: ✗ {result['error']}")
    return results


def write_report(results: List[Dict], output_file: str = config.CATALOG_REPORT_PATH):
    with open(output_file, 'w') as f:
        json.dump({
            "total_templates": len(results),
            "successful_templates": sum(1 for r in results if r["status"] == "success"),
            "no_data_templates": sum(1 for r in results if r["status"] == "no_data"),
            "failed_templates": sum(1 for r in results if r["status"] == "error"),
            "templates": results
        }, f, indent=2)
    logger.info(f"Saved catalog report to {output_file}")


def main() -> int:
    """Main orchestration function"""
    try:
        logger.info("=" * 60)
        logger.info("QUERY CATALOG CHECK - START")
        logger.info("=" * 60)

        # Step 1: Load catalog
        logger.info("\n[STEP 1] LOADING QUERY CATALOG")
        logger.info("-" * 60)
        store = TemplateStore.from_file(config.QUERY_CATALOG_PATH)

        # Step 2: Run templates
        logger.info("\n[STEP 2] RUNNING TEMPLATES AGAINST SNOWFLAKE")
        logger.info("-" * 60)
        with SnowflakeAdapter() as adapter:
            runner = CatalogRunner(store, adapter)
            results = check_catalog(runner, store)

        # Step 3: Report
        logger.info("\n[STEP 3] WRITING REPORT")
        logger.info("-" * 60)
        write_report(results)

        failed = [r for r in results if r["status"] != "success"]
        logger.info("\n" + "=" * 60)
        logger.info(f"Summary: {len(results) - len(failed)} successful, {len(failed)} with issues")
        logger.info("=" * 60)
        return 0 if not failed else 1

    except Exception as e:
        logger.error(f"Catalog check failed: {str(e)}", exc_info=True)
        return 1


if __name__ == "__main__":
    setup_logging()
    sys.exit(main())
