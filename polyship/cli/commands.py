# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Subcommand handlers for the polyship CLI.

Each function here corresponds to one CLI subcommand and returns an exit code
from polyship.cli.exit_codes. Errors are mapped, not re-raised:

  ConfigError, NamingCollisionError  -> CONFIG_ERROR
  VerificationError                  -> VALIDATION_ERROR
  any other ReleaseError             -> RUNTIME_ERROR
  anything unexpected                -> RUNTIME_ERROR, logged with a traceback

No print() calls except `plan --json`, whose stdout is the command's output.
Everything else goes through the structured logger on stderr.
"""

import argparse
import json
import logging
from pathlib import Path
from typing import Any, Optional

from polyship.cli.exit_codes import CONFIG_ERROR, RUNTIME_ERROR, SUCCESS, USER_ERROR, VALIDATION_ERROR
from polyship.config.exceptions import ConfigError
from polyship.config.loader import DEFAULT_CONFIG_NAME, load_config, render_config
from polyship.config.schema import PolyshipConfig, ReleaseConfig
from polyship.logging.logger import get_logger
from polyship.release.errors import NamingCollisionError, ReleaseError, VerificationError
from polyship.release.plan.models import ReleasePlan
from polyship.runtime.bootstrap import bootstrap


def _config_path(args: argparse.Namespace) -> Path:
    if args.config is not None:
        return Path(args.config)
    return Path.cwd() / DEFAULT_CONFIG_NAME


def _load_and_bootstrap(
    args: argparse.Namespace,
    command_name: str,
    require_config: bool = True,
) -> tuple[int, Optional[PolyshipConfig], Path, logging.Logger]:
    """
    The shared setup every command needs: find and load the config, run bootstrap.

    Returns (exit_code, config, workspace_root, logger). If exit_code is not
    SUCCESS, the caller should return it immediately. The workspace root is
    the directory holding the config file.
    """
    logger = get_logger(f"polyship.cli.{command_name}", log_level=args.log_level or "INFO")
    config_path = _config_path(args)
    workspace_root = config_path.resolve().parent

    config = None
    if config_path.is_file() or require_config:
        try:
            config = load_config(config_path)
        except ConfigError as err:
            bootstrap(None, args.log_level)
            logger.error(
                "Configuration error",
                extra={"command": command_name, "error": str(err)},
            )
            return CONFIG_ERROR, None, workspace_root, logger

    bootstrap(config.global_config if config is not None else None, args.log_level)
    if config is None:
        logger.debug(
            "No config file, running with defaults",
            extra={"command": command_name, "config": str(config_path)},
        )
    return SUCCESS, config, workspace_root, logger


def _exit_code_for(err: Exception) -> int:
    if isinstance(err, (ConfigError, NamingCollisionError)):
        return CONFIG_ERROR
    if isinstance(err, VerificationError):
        return VALIDATION_ERROR
    return RUNTIME_ERROR


def _only(args: argparse.Namespace) -> Optional[list[str]]:
    """Flatten repeated and comma-separated --only values."""
    if not args.only:
        return None
    names: list[str] = []
    for value in args.only:
        names.extend(part.strip() for part in value.split(",") if part.strip())
    return names or None


def _output_dir(args: argparse.Namespace, config: Optional[PolyshipConfig], workspace_root: Path) -> Path:
    if args.output is not None:
        return Path(args.output)
    raw = config.global_config.output_dir if config is not None else "dist"
    path = Path(raw)
    return path if path.is_absolute() else workspace_root / path


def _compute_plan(args: argparse.Namespace, config: PolyshipConfig, workspace_root: Path) -> ReleasePlan:
    from polyship.release.plan.planner import build_plan, collect_host_facts

    host = collect_host_facts(workspace_root)
    return build_plan(config, host, only=_only(args), tag_override=args.tag)


def _plan_document(plan: ReleasePlan) -> dict[str, Any]:
    from polyship.release.packaging.naming import assign_artifact_names

    names = assign_artifact_names(plan)
    data = plan.to_dict()
    data["units"] = [
        {
            "package": unit.package.name,
            "target": unit.target,
            "native": unit.is_native,
            "archives": [name for _, name in names[unit.key].archives],
            "sbom": names[unit.key].sbom,
            "signatures": list(names[unit.key].signatures),
        }
        for unit in plan.targets
    ]
    return data


def _pipeline(args: argparse.Namespace, config: PolyshipConfig, workspace_root: Path, plan: ReleasePlan):
    from polyship.release.pipeline import ReleasePipeline

    release_cfg = config.release or ReleaseConfig()
    return ReleasePipeline(
        plan,
        workspace_root,
        _output_dir(args, config, workspace_root),
        max_workers=config.global_config.max_workers,
        allow_partial=release_cfg.allow_partial,
    )


def handle_init(args: argparse.Namespace) -> int:
    """Detect projects in the working directory and write a starter config."""
    exit_code, _, workspace_root, logger = _load_and_bootstrap(args, "init", require_config=False)
    if exit_code != SUCCESS:
        return exit_code

    config_path = _config_path(args)
    if config_path.exists() and not args.force:
        logger.error(
            "Config file already exists; pass --force to overwrite",
            extra={"path": str(config_path)},
        )
        return USER_ERROR

    try:
        from polyship.release.plan.detect import default_config, detect_projects
        from polyship.utils.filesystem import atomic_write

        projects = detect_projects(workspace_root)
        config = default_config(projects)
        content = render_config(config)

        if args.dry_run:
            logger.info(
                "Dry run: would write config",
                extra={"path": str(config_path), "projects": [p.name for p in projects]},
            )
            return SUCCESS

        atomic_write(config_path, content)
        logger.info(
            "Config written",
            extra={
                "path": str(config_path),
                "projects": [f"{p.name} ({p.project_type})" for p in projects],
            },
        )
        return SUCCESS

    except (ConfigError, ReleaseError) as err:
        logger.error("Init failed", extra={"error": str(err)})
        return _exit_code_for(err)
    except Exception as err:
        logger.error("Init failed", extra={"error": str(err)}, exc_info=True)
        return RUNTIME_ERROR


def handle_plan(args: argparse.Namespace) -> int:
    """Compute the release plan and its artifact names without building anything."""
    exit_code, config, workspace_root, logger = _load_and_bootstrap(args, "plan")
    if exit_code != SUCCESS:
        return exit_code

    try:
        plan = _compute_plan(args, config, workspace_root)
        document = _plan_document(plan)

        if args.as_json:
            print(json.dumps(document, indent=2, sort_keys=True))
        else:
            for unit in document["units"]:
                logger.info(
                    "Planned unit",
                    extra={
                        "package": unit["package"],
                        "target": unit["target"],
                        "archives": unit["archives"],
                    },
                )
            logger.info(
                "Plan complete",
                extra={"version": plan.version.value, "units": len(document["units"])},
            )
        return SUCCESS

    except (ConfigError, ReleaseError) as err:
        logger.error("Planning failed", extra={"error": str(err)})
        return _exit_code_for(err)
    except Exception as err:
        logger.error("Planning failed", extra={"error": str(err)}, exc_info=True)
        return RUNTIME_ERROR


def handle_build(args: argparse.Namespace) -> int:
    """Run the build stage for every planned unit."""
    exit_code, config, workspace_root, logger = _load_and_bootstrap(args, "build")
    if exit_code != SUCCESS:
        return exit_code

    try:
        plan = _compute_plan(args, config, workspace_root)
        logger.info(
            "Starting build",
            extra={"command": "build", "dry_run": args.dry_run, "units": len(plan.targets)},
        )

        if args.dry_run:
            logger.info("Dry run: would build", extra={"units": [u.label for u in plan.targets]})
            return SUCCESS

        outputs, failures = _pipeline(args, config, workspace_root, plan).build()
        for key in sorted(outputs):
            output = outputs[key]
            logger.info(
                "Built",
                extra={"unit": f"{key[0]}/{key[1]}", "files": [p.name for p in output.paths]},
            )
        logger.info("Build complete", extra={"built": len(outputs), "failed": len(failures)})
        return SUCCESS

    except (ConfigError, ReleaseError) as err:
        logger.error("Build failed", extra={"error": str(err)})
        return _exit_code_for(err)
    except Exception as err:
        logger.error("Build failed", extra={"error": str(err)}, exc_info=True)
        return RUNTIME_ERROR


def handle_package(args: argparse.Namespace) -> int:
    """Build, package, attach SBOMs and signatures, and write the manifest."""
    exit_code, config, workspace_root, logger = _load_and_bootstrap(args, "package")
    if exit_code != SUCCESS:
        return exit_code

    try:
        plan = _compute_plan(args, config, workspace_root)
        logger.info(
            "Starting package",
            extra={"command": "package", "dry_run": args.dry_run, "version": plan.version.value},
        )

        if args.dry_run:
            logger.info("Dry run: would package", extra={"plan": _plan_document(plan)})
            return SUCCESS

        result = _pipeline(args, config, workspace_root, plan).run()
        logger.info(
            "Package complete",
            extra={
                "output_dir": str(result.output_dir),
                "manifest": str(result.manifest_path),
                "units": len(result.results),
                "skipped": len(result.failures),
            },
        )
        return SUCCESS

    except (ConfigError, ReleaseError) as err:
        logger.error("Package failed", extra={"error": str(err)})
        return _exit_code_for(err)
    except Exception as err:
        logger.error("Package failed", extra={"error": str(err)}, exc_info=True)
        return RUNTIME_ERROR


def handle_release(args: argparse.Namespace) -> int:
    """Package the release, then publish it to GitHub."""
    exit_code, config, workspace_root, logger = _load_and_bootstrap(args, "release")
    if exit_code != SUCCESS:
        return exit_code

    from polyship.release.publish.github import github_token

    release_cfg = config.release or ReleaseConfig()
    if release_cfg.github is None:
        logger.error("release.github (owner, repo) is not configured")
        return CONFIG_ERROR
    token = github_token()
    if token is None and not args.dry_run:
        logger.error("No GitHub token: set GITHUB_TOKEN or GH_TOKEN")
        return CONFIG_ERROR

    draft = release_cfg.draft if args.draft is None else args.draft
    prerelease = release_cfg.prerelease if args.prerelease is None else args.prerelease

    try:
        plan = _compute_plan(args, config, workspace_root)
        tag = plan.version.tag or f"v{plan.version.value}"
        logger.info(
            "Starting release",
            extra={"tag": tag, "draft": draft, "prerelease": prerelease, "dry_run": args.dry_run},
        )

        if args.dry_run:
            logger.info(
                "Dry run: would package and publish",
                extra={"owner": release_cfg.github.owner, "repo": release_cfg.github.repo, "tag": tag},
            )
            return SUCCESS

        from polyship.release.publish.changelog import render_changelog
        from polyship.release.publish.github import GitHubPublisher, ReleaseInput, release_assets

        result = _pipeline(args, config, workspace_root, plan).run()
        changelog = render_changelog(tag, workspace_root, config.changelog)

        publisher = GitHubPublisher(
            release_cfg.github.owner,
            release_cfg.github.repo,
            token,
            api_url=release_cfg.github.api_url,
        )
        try:
            published = publisher.publish(
                ReleaseInput(
                    manifest=result.manifest,
                    assets=release_assets(result.manifest, result.output_dir),
                    changelog=changelog,
                    tag=tag,
                    draft=draft,
                    prerelease=prerelease,
                )
            )
        finally:
            publisher.close()

        logger.info(
            "Release published",
            extra={"tag": tag, "url": published.html_url, "assets": len(published.uploaded)},
        )
        return SUCCESS

    except (ConfigError, ReleaseError) as err:
        logger.error("Release failed", extra={"error": str(err)})
        return _exit_code_for(err)
    except Exception as err:
        logger.error("Release failed", extra={"error": str(err)}, exc_info=True)
        return RUNTIME_ERROR


def handle_verify(args: argparse.Namespace) -> int:
    """Check an output directory against its manifest."""
    exit_code, config, workspace_root, logger = _load_and_bootstrap(args, "verify", require_config=False)
    if exit_code != SUCCESS:
        return exit_code

    try:
        from polyship.release.verification.verifier import verify_release

        if args.output is None and config is None:
            output_dir = Path.cwd() / "dist"
        else:
            output_dir = _output_dir(args, config, workspace_root)
        manifest_path = Path(args.manifest) if args.manifest is not None else None

        logger.info("Starting verification", extra={"command": "verify", "output_dir": str(output_dir)})
        if not output_dir.is_dir():
            logger.error("Output directory not found", extra={"path": str(output_dir)})
            return VALIDATION_ERROR

        report = verify_release(output_dir, manifest_path, require_signatures=args.require_signatures)
        if not report.is_valid:
            logger.error(
                "Verification failed",
                extra={
                    "failed": report.checks_failed,
                    "paths": report.failed_paths,
                    "errors": report.errors,
                },
            )
            return VALIDATION_ERROR

        logger.info(
            "Verification passed",
            extra={
                "checks": report.checks_passed,
                "entries": report.entries_checked,
                "signatures": report.signatures_checked,
            },
        )
        return SUCCESS

    except Exception as err:
        logger.error("Verification failed", extra={"error": str(err)}, exc_info=True)
        return RUNTIME_ERROR


def handle_info(args: argparse.Namespace) -> int:
    """Display environment and toolchain information."""
    exit_code, config, _, logger = _load_and_bootstrap(args, "info", require_config=False)
    if exit_code != SUCCESS:
        return exit_code

    from polyship import __version__
    from polyship.release.provenance import toolchain_versions
    from polyship.runtime.environment import get_system_info, host_triple, is_ci

    system_info = get_system_info()
    project_types = ["rust", "go", "node", "python"]
    if config is not None:
        if config.project is not None:
            project_types = [config.project.project_type]
        else:
            project_types = [p.project_type for p in config.packages]

    logger.info(
        "System information",
        extra={
            "polyship_version": __version__,
            "python_version": system_info.python_version,
            "platform": system_info.platform,
            "architecture": system_info.architecture,
            "host_triple": host_triple(),
            "ci": is_ci(),
            "toolchains": toolchain_versions(project_types),
            "config": str(_config_path(args)) if config is not None else None,
        },
    )
    return SUCCESS
