from __future__ import annotations

import argparse
import re
import sys
from dataclasses import dataclass
from typing import Callable

from pydantic import ValidationError

from . import db, prompts
from .kube import KubeClient, WorkloadError
from .models import SetImageRequest
from .providers import ProviderRegistry, RegistryError, default_registry
from .references import InvalidReference, split_tag
from .rollouts import RolloutError, RolloutPhase, RolloutState, RolloutSupervisor
from .settings import settings
from .version import BUILD_INFO


EXAMPLES = """\
examples:
  # Direct mode
  kubectl setimg my-app web=nginx:1.21.1

  # Interactive selection, triggered when arguments are missing
  kubectl setimg                    # select deployment, container and image
  kubectl setimg my-app             # select container and image
  kubectl setimg my-app web         # select image only

  # List containers only
  kubectl setimg my-app --list

  # Update with automatic rollback on failure
  kubectl setimg my-app web=nginx:1.21.1 --watch --timeout=10m
"""

_DURATION_PART_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(text: str) -> float:
    """Seconds from a duration such as ``300``, ``90s``, ``5m`` or ``1h30m``."""
    raw = (text or "").strip()
    if re.fullmatch(r"\d+(?:\.\d+)?", raw):
        return float(raw)
    parts = _DURATION_PART_RE.findall(raw)
    if not raw or "".join(n + u for n, u in parts) != raw:
        raise argparse.ArgumentTypeError(f"invalid duration: {text!r} (examples: 90s, 5m, 1h30m)")
    return sum(float(n) * _DURATION_UNITS[u] for n, u in parts)


def split_container_image(pair: str) -> tuple[str, str] | None:
    """``container=image`` -> (container, image); None when malformed."""
    parts = pair.split("=")
    if len(parts) != 2 or not parts[0] or not parts[1]:
        return None
    return parts[0], parts[1]


@dataclass
class Selection:
    deployment: str
    container: str
    image: str
    interactive: bool = False


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="kubectl-setimg",
        description="Update a container image in a deployment with interactive tag selection and multi-registry support.",
        epilog=EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p.add_argument("deployment", nargs="?", help="Deployment name")
    p.add_argument("container_image", nargs="?", metavar="CONTAINER=IMAGE", help="Container and new image (or just CONTAINER to pick a tag)")
    p.add_argument("-l", "--list", dest="list_only", action="store_true", help="List containers only")
    p.add_argument("-w", "--watch", action="store_true", help="Watch deployment and roll back if pods fail to start")
    p.add_argument(
        "--timeout",
        type=parse_duration,
        default=float(settings.watch_timeout_s),
        help="Timeout for watching deployment readiness (default: 5m)",
    )
    p.add_argument("-y", "--yes", action="store_true", help="Roll back without asking for confirmation")
    p.add_argument("-n", "--namespace", help="Namespace (default: from kubeconfig context)")
    p.add_argument("--kubeconfig", help="Path to the kubeconfig file")
    p.add_argument("--context", help="Kubeconfig context to use")
    p.add_argument("--events", type=int, metavar="N", help="Show the N most recent journal events and exit")
    p.add_argument("--version", action="store_true", help="Show version information")
    return p


def list_containers(kube: KubeClient, deployment: str) -> None:
    print(f"Containers in deployment {deployment}:")
    print("INDEX\tNAME\t\tCURRENT IMAGE")
    print("-----\t----\t\t-------------")
    for c in kube.get_containers(deployment):
        print(f"{c.index + 1}\t{c.name}\t\t{c.image}")


def choose_image(registry: ProviderRegistry, current_image: str) -> str:
    """Pick a tag of ``current_image``'s repository; falls back to manual entry."""
    print("🏷️  Loading image tags...")
    try:
        records = registry.list_tags_with_time(current_image)
        name, _ = split_tag(current_image)
    except (RegistryError, InvalidReference) as e:
        print(f"⚠️  Failed to fetch tags: {e}")
        print("📝 Falling back to manual input...")
        return prompts.input_text("New image", default=current_image)

    # Keeping the current image is always the first choice.
    options = [(current_image, "(current)")]
    options += [
        (f"{name}:{r.tag}", prompts.describe_tag(r))
        for r in records
        if f"{name}:{r.tag}" != current_image
    ]
    return prompts.select(f"Tags of {name} (current: {current_image}):", options)


def run_interactive(
    kube: KubeClient,
    registry: ProviderRegistry,
    deployment: str | None,
    container: str | None,
) -> Selection:
    if not deployment:
        print("🚀 Loading deployments...")
        names = kube.list_deployments()
        deployment = prompts.select(
            f"Deployments in namespace {kube.namespace}:",
            [(n, "") for n in names],
        )

    if not container:
        print("📦 Loading containers...")
        containers = kube.get_containers(deployment)
        container = prompts.select(
            f"Containers in deployment {deployment}:",
            [(c.name, c.image) for c in containers],
        )
        current_image = next(c.image for c in containers if c.name == container)
    else:
        print(f"🚀 Using specified deployment: {deployment}")
        print(f"📦 Using specified container: {container}")
        current_image = kube.get_current_image(deployment, container)

    image = choose_image(registry, current_image)

    print("\n✅ Selected:")
    print(f"   Deployment: {deployment}")
    print(f"   Container:  {container}")
    print(f"   New Image:  {image}")
    print()
    return Selection(deployment=deployment, container=container, image=image, interactive=True)


def phase_reporter(watch: bool, timeout_s: float) -> Callable[[RolloutState], None]:
    """Operator-facing progress lines for each rollout phase change."""

    def report(state: RolloutState) -> None:
        phase = state.phase
        if phase is RolloutPhase.WATCHING or (phase is RolloutPhase.READY and not watch):
            print(f"deployment.apps/{state.workload_id} container {state.container_id} image updated to {state.current_image}")
        if phase is RolloutPhase.WATCHING:
            print(f"\n🔍 Watching deployment {state.workload_id} for {int(timeout_s)}s...")
        elif phase is RolloutPhase.READY and watch:
            print(f"✅ Deployment {state.workload_id} is ready!")
        elif phase is RolloutPhase.FAILED:
            print(f"❌ Error watching deployment: {state.cause}")
        elif phase is RolloutPhase.ROLLING_BACK:
            print(f"\n🔄 Rolling back container {state.container_id} to previous image: {state.previous_image}")
        elif phase is RolloutPhase.ROLLED_BACK:
            print(f"✅ Rollback completed! Container {state.container_id} image reverted to {state.previous_image}")
        elif phase is RolloutPhase.ROLLBACK_FAILED:
            print(f"🚨 Rollback failed: {state.cause}", file=sys.stderr)

    return report


def _print_events(limit: int) -> None:
    for ev in db.list_events(limit):
        scope = " ".join(x for x in (ev.workload, ev.image) if x)
        print(f"{ev.ts}  {ev.level:<5}  {scope}  {ev.message}".rstrip())


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(BUILD_INFO.describe())
        return 0
    if args.events is not None:
        _print_events(args.events)
        return 0

    pair = split_container_image(args.container_image) if args.container_image else None
    if args.list_only and not args.deployment:
        print("Error: deployment name is required for --list mode", file=sys.stderr)
        return 1

    try:
        kube = KubeClient.from_config(args.kubeconfig, args.context, args.namespace)

        if args.list_only:
            list_containers(kube, args.deployment)
            return 0

        if args.deployment and pair:
            selection = Selection(deployment=args.deployment, container=pair[0], image=pair[1])
        else:
            print("🎯 Missing required information, switching to interactive mode...")
            container = (args.container_image or "").split("=", 1)[0] or None
            selection = run_interactive(kube, default_registry(), args.deployment, container)

        request = SetImageRequest(
            workload=selection.deployment,
            container=selection.container,
            image=selection.image,
            watch=args.watch,
            timeout_s=max(1, int(args.timeout)),
        )
        # Only ask before rolling back when the operator is already at the keyboard.
        confirm = prompts.confirm if selection.interactive and not args.yes else None
        supervisor = RolloutSupervisor(
            kube,
            confirm=confirm,
            on_phase=phase_reporter(request.watch, request.timeout_s),
        )
        result = supervisor.run(
            request.workload,
            request.container,
            request.image,
            watch=request.watch,
            timeout_s=request.timeout_s,
        )
    except (WorkloadError, RolloutError, RegistryError, InvalidReference, prompts.PromptAborted) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except ValidationError as e:
        print(f"Error: invalid input: {e}", file=sys.stderr)
        return 1

    if result.rollback_cancelled:
        print("Rollback cancelled by user.")
    if result.phase is RolloutPhase.READY:
        return 0
    if result.phase is RolloutPhase.ROLLBACK_FAILED:
        return 2
    return 1


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
