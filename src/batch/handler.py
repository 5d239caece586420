from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from action.config import Config, Parameters, load_config
from action.errors import ConfigLoadError, ConfigurationError
from action.run import ActionResult, ActionRun
from action.schedule import ScheduleGate
from state.models import States
from state.store import StateStore, StateStoreError


logger = logging.getLogger(__name__)

# Environment variable names
ENV_CONFIG = "ACTION_CONFIG"  # config file path when no argument is given (else stdin)
ENV_STATE_KEY = "ACTION_STATE_KEY"  # overrides parameters.state_key
ENV_STATE_FILE = "ACTION_STATE_FILE"  # overrides parameters.state_file
ENV_LOG_LEVEL = "ACTION_LOG_LEVEL"

EXIT_OK = 0
EXIT_CONFIG = 1
EXIT_STATE = 2

HTTP_TIMEOUT = 15.0


def _getenv(name: str, default: Optional[str] = None) -> Optional[str]:
    val = os.environ.get(name)
    return val if val not in (None, "") else default


def apply_env_overrides(params: Parameters) -> Parameters:
    """Let deployments keep the passphrase and state location out of the config file."""
    update: Dict[str, Any] = {}
    state_key = _getenv(ENV_STATE_KEY)
    if state_key is not None:
        update["state_key"] = state_key
    state_file = _getenv(ENV_STATE_FILE)
    if state_file is not None:
        update["state_file"] = state_file
    return params.model_copy(update=update) if update else params


def open_store(params: Parameters, *, s3: Optional[object] = None) -> StateStore:
    try:
        return StateStore.from_location(
            params.state_file,
            passphrase=params.state_key,
            key_derivation=params.key_derivation,
            s3=s3,
        )
    except ValueError as ex:
        raise ConfigLoadError(str(ex)) from ex


@dataclass
class BatchReport:
    """
    Aggregated outcome of one batch.

    - states: what gets persisted, one entry per configured action
    - results: per-action results of the actions that were built
    - failed: action key -> error message, for build and run failures alike
    - total: number of configured actions
    """

    total: int = 0
    states: States = field(default_factory=dict)
    results: List[ActionResult] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    def summary(self) -> Dict[str, Any]:
        ran = sum(1 for r in self.results if r.ran)
        return {
            "ok": not self.failed,
            "actions": self.total,
            "ran": ran,
            "skipped": sum(1 for r in self.results if not r.ran and r.ok),
            "delivered": sum(r.delivered for r in self.results),
            "failed": dict(self.failed),
        }


def build_actions(
    config: Config,
    prior: States,
    *,
    client: Optional[httpx.AsyncClient] = None,
    gate: Optional[ScheduleGate] = None,
) -> Tuple[List[ActionRun], Dict[str, str]]:
    """Build one ActionRun per configured action, seeded with its prior State.

    An action whose configuration is invalid is reported in the returned error
    map and left out; the other actions are unaffected.
    """
    actions: List[ActionRun] = []
    errors: Dict[str, str] = {}
    for action_config in config.actions:
        state = dict(prior.get(action_config.key, {}))
        try:
            actions.append(action_config.into_action(state, client=client, gate=gate))
        except ConfigurationError as ex:
            errors[action_config.key] = f"{type(ex).__name__}: {ex}"
            logger.error("Action %s not built: %s", action_config.key, ex)
    return actions, errors


async def execute_all(actions: Sequence[ActionRun]) -> List[ActionResult]:
    """Run every action concurrently and collect one result per action."""
    outcomes = await asyncio.gather(*(a.execute() for a in actions), return_exceptions=True)
    results: List[ActionResult] = []
    for action, outcome in zip(actions, outcomes):
        if isinstance(outcome, ActionResult):
            results.append(outcome)
            continue
        if not isinstance(outcome, Exception):
            raise outcome
        logger.error("Action %s crashed", action.key, exc_info=outcome)
        results.append(
            ActionResult(
                key=action.key,
                state=action.state,
                ran=True,
                error=f"{type(outcome).__name__}: {outcome}",
            )
        )
    return results


async def run_batch(
    config: Config,
    prior: States,
    *,
    client: Optional[httpx.AsyncClient] = None,
    gate: Optional[ScheduleGate] = None,
) -> BatchReport:
    """Build and execute all actions; return final states and per-action outcomes.

    Only actions present in `config` are carried into the returned states. An
    action that failed to build keeps its prior State untouched.
    """
    owns_client = client is None
    http = client or httpx.AsyncClient(timeout=HTTP_TIMEOUT, follow_redirects=True)
    try:
        actions, build_errors = build_actions(config, prior, client=http, gate=gate)
        results = await execute_all(actions)
    finally:
        if owns_client:
            await http.aclose()

    report = BatchReport(total=len(config.actions), results=results, failed=dict(build_errors))
    by_key = {r.key: r for r in results}
    for action_config in config.actions:
        key = action_config.key
        result = by_key.get(key)
        if result is not None:
            report.states[key] = result.state
            if result.error is not None:
                report.failed[key] = result.error
        elif key in prior:
            report.states[key] = dict(prior[key])
    return report


def run_once(
    config: Config,
    *,
    store: Optional[StateStore] = None,
    client: Optional[httpx.AsyncClient] = None,
    gate: Optional[ScheduleGate] = None,
) -> Dict[str, Any]:
    """Load state, run one batch of due actions, persist state.

    Per-action failures are reported in the returned summary under `failed`
    and never raised. Raises StateStoreError when the final state cannot be
    written.
    """
    params = apply_env_overrides(config.parameters)
    store = store or open_store(params)

    prior = store.load()
    logger.info("Running %d action(s)", len(config.actions))
    report = asyncio.run(run_batch(config, prior, client=client, gate=gate))
    store.save(report.states)

    summary = report.summary()
    if report.failed:
        logger.warning("Batch finished with %d failed action(s): %s", len(report.failed), ", ".join(report.failed))
    else:
        logger.info("Batch finished: %d ran, %d delivered", summary["ran"], summary["delivered"])
    return summary


def read_config(path: Optional[str] = None) -> Config:
    """Read the configuration from `path`, `$ACTION_CONFIG`, or stdin."""
    source = path or _getenv(ENV_CONFIG)
    if source and source != "-":
        return load_config(source)
    return Config.from_json(sys.stdin.read())


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    raw = (event or {}).get("config")
    if raw is None:
        config = read_config()
    elif isinstance(raw, str):
        config = Config.from_json(raw)
    else:
        config = Config.from_obj(raw)
    return run_once(config)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="action-relay",
        description="Run every due feed -> mapper -> sink action once and persist their state.",
    )
    parser.add_argument("config", nargs="?", help="JSON configuration file (default: $ACTION_CONFIG or stdin)")
    parser.add_argument("--log-level", default=_getenv(ENV_LOG_LEVEL, "INFO"), help="logging level (default: INFO)")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = read_config(args.config)
    except ConfigLoadError as ex:
        logger.error("%s", ex)
        return EXIT_CONFIG

    try:
        summary = run_once(config)
    except ConfigLoadError as ex:
        logger.error("%s", ex)
        return EXIT_CONFIG
    except StateStoreError as ex:
        logger.error("%s", ex)
        return EXIT_STATE

    print(json.dumps(summary, sort_keys=True))
    return EXIT_OK


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
