#!/usr/bin/env python3
"""
Health check script for Supabase replication.

This script performs health checks on the replication setup:
- Configuration validation
- Supabase REST API connectivity
- Table schema (primary key, last modified and deleted columns)
- Realtime client availability

Can be used for monitoring, alerting, or pre-deployment validation.

Usage:
    python scripts/health_check.py [--config CONFIG_PATH] [--json]

Exit codes:
    0: All checks passed
    1: One or more checks failed
"""

import argparse
import asyncio
import importlib.util
import json
import sys
from datetime import datetime

import structlog

from supabase_replication.backend.postgrest_client import PostgrestClient
from supabase_replication.models.config import AppConfig
from supabase_replication.utils.config_loader import ConfigLoader

log = structlog.stdlib.get_logger()


class HealthChecker:
    """Performs health checks on replication components."""

    def __init__(self, config_path: str | None = None):
        """
        Initialize health checker.

        Args:
            config_path: Optional path to configuration file
        """
        self.config_path = config_path
        self.config: AppConfig | None = None
        self.sample_row: dict | None = None
        self.results: dict[str, dict] = {}

    def check_configuration(self) -> bool:
        """
        Check if configuration is valid.

        Returns:
            True if configuration is valid, False otherwise
        """
        check_name = "configuration"
        log.info("checking_configuration")

        try:
            config_loader = ConfigLoader()
            self.config = config_loader.load_config(self.config_path)
            warnings = config_loader.validate_config(self.config)

            self.results[check_name] = {
                "status": "warn" if warnings else "pass",
                "message": "; ".join(warnings) or "Configuration loaded successfully",
                "details": {
                    "supabase_url": str(self.config.supabase.url),
                    "table": self.config.replication.table,
                    "replication_identifier": self.config.replication.replication_identifier,
                    "batch_size": self.config.replication.batch_size,
                },
            }
            return True

        except Exception as e:
            self.results[check_name] = {
                "status": "fail",
                "message": f"Configuration error: {str(e)}",
                "details": {},
            }
            return False

    async def check_backend_connectivity(self) -> bool:
        """
        Check connectivity to the Supabase REST API by reading one row.

        Returns:
            True if the table can be read, False otherwise
        """
        check_name = "backend_connectivity"
        log.info("checking_backend_connectivity")

        if self.config is None:
            self.results[check_name] = {
                "status": "skip",
                "message": "Skipped because configuration failed to load",
                "details": {},
            }
            return False

        table = self.config.replication.table
        try:
            async with PostgrestClient.from_config(self.config.supabase) as client:
                rows = await client.select(table, [("select", "*"), ("limit", "1")])

            self.sample_row = rows[0] if rows else None
            self.results[check_name] = {
                "status": "pass",
                "message": "Successfully read from Supabase",
                "details": {
                    "table": table,
                    "rows_accessible": bool(rows),
                },
            }
            return True

        except Exception as e:
            self.results[check_name] = {
                "status": "fail",
                "message": f"Supabase connection failed: {str(e)}",
                "details": {"table": table},
            }
            return False

    def check_table_schema(self) -> bool:
        """
        Check that a sample row carries the columns replication depends on.

        Returns:
            True if the columns are present or the table is empty, False otherwise
        """
        check_name = "table_schema"
        log.info("checking_table_schema")

        if self.config is None:
            self.results[check_name] = {
                "status": "skip",
                "message": "Skipped because configuration failed to load",
                "details": {},
            }
            return False

        if self.sample_row is None:
            self.results[check_name] = {
                "status": "warn",
                "message": "Table is empty or unreachable, schema could not be verified",
                "details": {},
            }
            return True

        replication = self.config.replication
        required = [
            replication.primary_key,
            replication.last_modified_field,
            replication.deleted_field,
        ]
        missing = [column for column in required if column not in self.sample_row]

        if missing:
            self.results[check_name] = {
                "status": "fail",
                "message": f"Table is missing required columns: {', '.join(missing)}",
                "details": {"required_columns": required},
            }
            return False

        self.results[check_name] = {
            "status": "pass",
            "message": "Table has all replication columns",
            "details": {"required_columns": required},
        }
        return True

    def check_realtime_client(self) -> bool:
        """
        Check whether the realtime extra is installed when realtime is enabled.

        Returns:
            Always True; a missing realtime client is reported as a warning
        """
        check_name = "realtime_client"
        log.info("checking_realtime_client")

        if self.config is None or not self.config.replication.realtime:
            self.results[check_name] = {
                "status": "skip",
                "message": "Realtime replication is disabled",
                "details": {},
            }
            return True

        if importlib.util.find_spec("supabase") is None:
            self.results[check_name] = {
                "status": "warn",
                "message": "Realtime enabled but the supabase package is not installed; "
                "install supabase-replication[realtime]",
                "details": {},
            }
        else:
            self.results[check_name] = {
                "status": "pass",
                "message": "Realtime client is available",
                "details": {"schema": self.config.replication.realtime_schema},
            }
        return True

    async def run_all_checks(self) -> bool:
        """
        Run all health checks.

        Returns:
            True if all checks passed, False otherwise
        """
        all_passed = self.check_configuration()
        all_passed = await self.check_backend_connectivity() and all_passed
        all_passed = self.check_table_schema() and all_passed
        all_passed = self.check_realtime_client() and all_passed
        return all_passed

    def get_summary(self) -> dict:
        """
        Get summary of all health check results.

        Returns:
            Dictionary with summary information
        """
        total_checks = len(self.results)
        passed = sum(1 for r in self.results.values() if r["status"] == "pass")
        failed = sum(1 for r in self.results.values() if r["status"] == "fail")
        warnings = sum(1 for r in self.results.values() if r["status"] == "warn")
        skipped = sum(1 for r in self.results.values() if r["status"] == "skip")

        return {
            "timestamp": datetime.now().isoformat(),
            "overall_status": "healthy" if failed == 0 else "unhealthy",
            "total_checks": total_checks,
            "passed": passed,
            "failed": failed,
            "warnings": warnings,
            "skipped": skipped,
            "checks": self.results,
        }


def main():
    """Main entry point for health check script."""
    parser = argparse.ArgumentParser(description="Health check for Supabase replication")
    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration file",
        default=None,
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output results in JSON format",
    )

    args = parser.parse_args()

    checker = HealthChecker(config_path=args.config)
    all_passed = asyncio.run(checker.run_all_checks())
    summary = checker.get_summary()

    if args.json:
        print(json.dumps(summary, indent=2))
    else:
        print("\n" + "=" * 60)
        print("HEALTH CHECK SUMMARY")
        print("=" * 60)
        print(f"Timestamp: {summary['timestamp']}")
        print(f"Overall Status: {summary['overall_status'].upper()}")
        print(f"Total Checks: {summary['total_checks']}")
        print(f"Passed: {summary['passed']}")
        print(f"Failed: {summary['failed']}")
        print(f"Warnings: {summary['warnings']}")
        print(f"Skipped: {summary['skipped']}")
        print("\n" + "-" * 60)
        print("DETAILED RESULTS")
        print("-" * 60)

        for check_name, result in summary["checks"].items():
            status_symbol = {
                "pass": "✓",
                "fail": "✗",
                "warn": "⚠",
                "skip": "○",
            }.get(result["status"], "?")

            print(f"\n{status_symbol} {check_name.replace('_', ' ').title()}")
            print(f"  Status: {result['status'].upper()}")
            print(f"  Message: {result['message']}")

            if result["details"]:
                print("  Details:")
                for key, value in result["details"].items():
                    print(f"    - {key}: {value}")

        print("\n" + "=" * 60)

    sys.exit(0 if all_passed else 1)


if __name__ == "__main__":
    main()
