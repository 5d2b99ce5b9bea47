"""
Setup Verification Script for the Building Detection Orchestrator.

This module verifies that all dependencies are installed, the configuration
loads, and the detection service replicas answer.

Author: Building Detection Team
Date: 2026-02-14
"""

import importlib
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import requests

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)
logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))


# Required packages and their import names
REQUIRED_PACKAGES: Dict[str, str] = {
    "requests": "requests",
    "numpy": "numpy",
    "yaml": "pyyaml",
    "dotenv": "python-dotenv",
    "fastapi": "fastapi",
    "pydantic": "pydantic",
    "uvicorn": "uvicorn",
}

OPTIONAL_PACKAGES: Dict[str, str] = {
    "pytest": "pytest",
    "httpx": "httpx",
}

PING_TIMEOUT_SECONDS = 10.0


def check_python_version() -> Tuple[bool, str]:
    """
    Check if Python version meets requirements.

    Returns:
        Tuple[bool, str]: Success status and message.
    """
    version_info = sys.version_info
    if version_info.major == 3 and version_info.minor >= 9:
        return True, f"Python {version_info.major}.{version_info.minor}.{version_info.micro}"
    return False, f"Python 3.9+ required, found {version_info.major}.{version_info.minor}"


def check_package(import_name: str) -> Tuple[bool, str]:
    """
    Check if a package is installed and get its version.

    Args:
        import_name: The import name of the package.

    Returns:
        Tuple[bool, str]: Installation status and version or error message.
    """
    try:
        module = importlib.import_module(import_name)
        version = getattr(module, "__version__", "unknown")
        return True, version
    except ImportError:
        return False, "Not installed"


def check_config_files(project_root: Path) -> List[str]:
    """
    Check if required configuration files exist.

    Args:
        project_root: The root path of the project.

    Returns:
        List[str]: List of missing configuration files.
    """
    required_files = [
        "config/orchestrator_config.yaml",
        "pyproject.toml",
    ]

    missing = []
    for file_path in required_files:
        full_path = project_root / file_path
        if not full_path.exists():
            missing.append(file_path)

    return missing


def check_endpoint(
    endpoint: str,
    session: Optional[Any] = None,
    timeout: float = PING_TIMEOUT_SECONDS,
) -> Tuple[bool, str]:
    """
    Check that a detection service replica answers.

    Sleeping replicas may need a first request to wake up, so a slow or
    failed answer is a warning rather than a hard failure.

    Args:
        endpoint: Service base URL.
        session: Object with a `requests`-compatible `get`. Defaults to requests.
        timeout: Seconds to wait for an answer.

    Returns:
        Tuple[bool, str]: Reachability and HTTP status or error message.
    """
    session = session if session is not None else requests
    try:
        response = session.get(endpoint.rstrip("/") + "/", timeout=timeout)
    except requests.RequestException as e:
        return False, f"{type(e).__name__}: {e}"
    if response.ok:
        return True, f"HTTP {response.status_code}"
    return False, f"HTTP {response.status_code}"


def check_endpoints(
    endpoints: Sequence[str],
    session: Optional[Any] = None,
) -> Dict[str, Tuple[bool, str]]:
    """Check every replica of the endpoint pool."""
    return {endpoint: check_endpoint(endpoint, session) for endpoint in endpoints}


def print_section(title: str) -> None:
    """Print a formatted section header."""
    logger.info("=" * 60)
    logger.info(f"  {title}")
    logger.info("=" * 60)


def main() -> None:
    """Main entry point for setup verification."""
    all_passed = True

    # Check Python version
    print_section("Python Version")
    success, message = check_python_version()
    status = "PASS" if success else "FAIL"
    logger.info(f"  [{status}] {message}")
    all_passed = all_passed and success

    # Check required packages
    print_section("Required Packages")
    for import_name, package_name in REQUIRED_PACKAGES.items():
        success, version = check_package(import_name)
        status = "PASS" if success else "FAIL"
        logger.info(f"  [{status}] {package_name}: {version}")
        all_passed = all_passed and success

    # Check optional packages
    print_section("Optional Packages")
    for import_name, package_name in OPTIONAL_PACKAGES.items():
        success, version = check_package(import_name)
        status = "PASS" if success else "WARN"
        logger.info(f"  [{status}] {package_name}: {version}")

    # Check configuration files
    print_section("Configuration Files")
    missing_files = check_config_files(PROJECT_ROOT)
    if missing_files:
        for file_path in missing_files:
            logger.info(f"  [FAIL] Missing: {file_path}")
            all_passed = False
    else:
        logger.info("  [PASS] All configuration files exist")

    # Check configuration and endpoints
    print_section("Detection Endpoints")
    try:
        from inference.config import load_config
        config = load_config()
    except Exception as e:
        logger.info(f"  [FAIL] Configuration could not be loaded: {e}")
        all_passed = False
    else:
        logger.info(
            f"  [INFO] Hard limit {config.hard_tile_limit} tiles, "
            f"timeout {config.timeout_seconds:g}s"
        )
        for endpoint, (success, message) in check_endpoints(config.endpoints).items():
            status = "PASS" if success else "WARN"
            logger.info(f"  [{status}] {endpoint}: {message}")

    # Final summary
    print_section("Verification Summary")
    if all_passed:
        logger.info("  [SUCCESS] All checks passed. Setup is complete.")
        sys.exit(0)
    else:
        logger.info("  [FAILURE] Some checks failed. Please review and fix issues.")
        sys.exit(1)


if __name__ == "__main__":
    main()
