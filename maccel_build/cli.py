#!/usr/bin/env python3
"""
maccel-build CLI
================

Usage:
    maccel-build generate [--version VERSION] [--force] [--dry-run]
    maccel-build cache {list,show}
    maccel-build packages {check,urls,verify,release-tag,list,info,wait,download,latest-maccel}
    maccel-build install [--maccel-version VERSION] [--kernel-version KERNEL]
    maccel-build fallback REASON
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

import requests
from github import GithubException

from .cache import SpecCache
from .config import Settings, get_github_token, settings
from .errors import MaccelBuildError, UpstreamUnreachable, VersionNotFound
from .fallback import activate_fallback
from .generator import SpecGenerator
from .installer import MaccelIntegration
from .packages import PackageLocator, release_tag
from .retry import RetryPolicy
from .services.github_service import GitHubService
from .versions import VersionResolver, is_valid_version, normalize_version

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def _upstream_resolver(config: Settings) -> VersionResolver:
    github = GitHubService(config.UPSTREAM_REPO, token=get_github_token(config))
    return VersionResolver(github, RetryPolicy.from_settings(config))


def _locator(config: Settings) -> PackageLocator:
    return PackageLocator(GitHubService(config.RPM_BUILDER_REPO, token=get_github_token(config)))


# ============================================================================
# Commands
# ============================================================================


def cmd_generate(args: argparse.Namespace, config: Settings) -> int:
    generator = SpecGenerator.from_settings(config)
    result = generator.generate(
        version=args.version or config.MACCEL_VERSION or None,
        force=args.force or config.FORCE_REGENERATE,
        dry_run=args.dry_run,
    )
    for line in result.export_lines():
        print(line)
    logger.info("Spec file generation completed successfully")
    return 0


def cmd_cache(args: argparse.Namespace, config: Settings) -> int:
    cache = SpecCache(config.SPECS_CACHE_DIR)
    if args.action == "list":
        for version in cache.list_versions():
            print(version)
        return 0

    if not args.cache_version:
        logger.error("cache show requires a VERSION")
        return 1
    version = normalize_version(args.cache_version)
    if not is_valid_version(version):
        raise VersionNotFound(f"Maccel version '{args.cache_version}' is not a valid version string")
    if not cache.check(version):
        logger.error(f"No complete cache entry for version {version}")
        return 1
    print(cache.load_metadata(version).model_dump_json(indent=2))
    return 0


def cmd_packages(args: argparse.Namespace, config: Settings) -> int:
    action = args.action

    if action == "release-tag":
        print(release_tag(args.kernel_version, args.maccel_version))
        return 0

    if action == "latest-maccel":
        print(_upstream_resolver(config).latest())
        return 0

    locator = _locator(config)

    if action == "check":
        exists = locator.release_exists(release_tag(args.kernel_version, args.maccel_version))
        print("true" if exists else "false")
    elif action == "urls":
        tag = release_tag(args.kernel_version, args.maccel_version)
        for url in locator.package_urls(tag, args.maccel_version, args.fedora_version):
            print(url)
    elif action == "verify":
        print("true" if locator.verify_urls(args.urls) else "false")
    elif action == "list":
        for tag in locator.list_kernel_releases(args.kernel_pattern):
            print(tag)
    elif action == "info":
        print(locator.release_info(args.tag).model_dump_json(indent=2))
    elif action == "wait":
        info = locator.wait_for_release(
            args.tag,
            timeout=args.timeout if args.timeout is not None else config.BUILD_WAIT_TIMEOUT,
            interval=args.interval if args.interval is not None else config.BUILD_POLL_INTERVAL,
        )
        print(info.model_dump_json(indent=2))
    elif action == "download":
        for path in locator.download_release(args.tag, args.output_dir or config.PACKAGE_OUTPUT_DIR):
            print(path)
    return 0


def cmd_install(args: argparse.Namespace, config: Settings) -> int:
    try:
        maccel_version = args.maccel_version or config.MACCEL_VERSION or None
        maccel_version = _upstream_resolver(config).resolve(maccel_version)
        packages = MaccelIntegration.from_settings(config).integrate(maccel_version, args.kernel_version)
    except (MaccelBuildError, GithubException, requests.RequestException) as e:
        if not args.fallback_on_failure:
            raise
        activate_fallback(str(e), root=args.root, settings=config)
        return 0

    for path in packages:
        print(path)
    logger.info("Maccel integration completed successfully")
    return 0


def cmd_fallback(args: argparse.Namespace, config: Settings) -> int:
    activate_fallback(args.reason, root=args.root, settings=config)
    return 0


# ============================================================================
# CLI
# ============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="maccel-build",
        description="Generate maccel RPM specs and coordinate maccel RPM packages",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Generate specs for the latest version
  maccel-build generate

  # Generate specs for a specific version
  maccel-build generate --version 0.4.1
  MACCEL_VERSION=0.4.1 maccel-build generate

  # Force regeneration of cached specs
  maccel-build generate --force
  FORCE_REGENERATE=true maccel-build generate

  # Source the generated paths in a build step
  eval "$(maccel-build generate)"

  # Check whether packages exist for a kernel
  maccel-build packages check 6.11.5-300.fc41.x86_64 0.4.1
        """
    )
    parser.add_argument("--log-level", help="Override LOG_LEVEL")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    generate_parser = subparsers.add_parser("generate", help="Generate RPM spec files with caching")
    generate_parser.add_argument("-v", "--version", help="Pin to specific maccel version (default: latest)")
    generate_parser.add_argument("-f", "--force", action="store_true",
                                 help="Force regeneration even if cached")
    generate_parser.add_argument("-d", "--dry-run", action="store_true",
                                 help="Render and validate without writing the cache")

    cache_parser = subparsers.add_parser("cache", help="Inspect the spec cache")
    cache_parser.add_argument("action", choices=["list", "show"], help="Cache action")
    cache_parser.add_argument("cache_version", nargs="?", metavar="VERSION", help="Version for 'show'")

    packages_parser = subparsers.add_parser("packages", help="Locate pre-built maccel RPMs")
    package_actions = packages_parser.add_subparsers(dest="action", required=True)

    check_parser = package_actions.add_parser("check", help="Check if packages exist (true/false)")
    check_parser.add_argument("kernel_version")
    check_parser.add_argument("maccel_version")

    urls_parser = package_actions.add_parser("urls", help="Print package download URLs")
    urls_parser.add_argument("kernel_version")
    urls_parser.add_argument("maccel_version")
    urls_parser.add_argument("fedora_version")

    verify_parser = package_actions.add_parser("verify", help="Verify package URLs are reachable")
    verify_parser.add_argument("urls", nargs="+")

    tag_parser = package_actions.add_parser("release-tag", help="Print the release tag")
    tag_parser.add_argument("kernel_version")
    tag_parser.add_argument("maccel_version")

    list_parser = package_actions.add_parser("list", help="List releases matching a kernel")
    list_parser.add_argument("kernel_pattern")

    info_parser = package_actions.add_parser("info", help="Show release details")
    info_parser.add_argument("tag")

    wait_parser = package_actions.add_parser("wait", help="Wait for a release to be published")
    wait_parser.add_argument("tag")
    wait_parser.add_argument("--timeout", type=float, help="Total wait budget in seconds")
    wait_parser.add_argument("--interval", type=float, help="Polling interval in seconds")

    download_parser = package_actions.add_parser("download", help="Download and verify release RPMs")
    download_parser.add_argument("tag")
    download_parser.add_argument("--output-dir", type=Path)

    package_actions.add_parser("latest-maccel", help="Print the latest upstream maccel version")

    install_parser = subparsers.add_parser("install", help="Fetch RPMs for the installed kernel")
    install_parser.add_argument("--maccel-version", help="maccel version (default: latest)")
    install_parser.add_argument("--kernel-version", help="Kernel version (default: detect)")
    install_parser.add_argument("--fallback-on-failure", action="store_true",
                                help="Install fallback notices instead of failing")
    install_parser.add_argument("--root", type=Path, default=Path("/"),
                                help="Filesystem root for fallback files")

    fallback_parser = subparsers.add_parser("fallback", help="Install integration failure notices")
    fallback_parser.add_argument("reason", nargs="?", default="Unknown error")
    fallback_parser.add_argument("--root", type=Path, default=Path("/"),
                                 help="Filesystem root for fallback files")

    return parser


COMMANDS = {
    "generate": cmd_generate,
    "cache": cmd_cache,
    "packages": cmd_packages,
    "install": cmd_install,
    "fallback": cmd_fallback,
}


def main(argv: Optional[List[str]] = None, config: Optional[Settings] = None) -> int:
    """CLI entry point. Returns the process exit code."""
    config = config or settings
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(args.log_level or config.LOG_LEVEL)

    if not args.command:
        parser.print_help()
        return 1

    try:
        return COMMANDS[args.command](args, config)
    except MaccelBuildError as e:
        logger.error(str(e))
        return e.exit_code
    except (GithubException, requests.RequestException) as e:
        logger.error(f"GitHub request failed: {e}")
        return UpstreamUnreachable.exit_code
    except (OSError, UnicodeError) as e:
        logger.error(f"{args.command} failed: {e}")
        return MaccelBuildError.exit_code


if __name__ == "__main__":
    sys.exit(main())
