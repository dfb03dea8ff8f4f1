"""Command-line helper that runs the SHEN Studio pipeline once.

The script mirrors the web workflow step by step:

1. Wrap the literal on-image text of the prompt in quotes.
2. Render each quoted span into a text plate.
3. Engineer the structured prompt from the quoted prompt, plates and references.
4. Synthesize the grounding reference when the engineered prompt asks for one.
5. Generate the final image.

Example usage::

    python studio_workflow.py --prompt 'A stop sign that says "STOP"' --output-dir out/
    python studio_workflow.py --input job.json --aspect-ratio 16:9 --reference logo.png

Progress is printed to stdout; with ``--output-dir`` the plates, the engineered
prompt and the image are written to files as well.
"""
from __future__ import annotations

import argparse
import asyncio
import json
import mimetypes
from pathlib import Path
from typing import Any, Dict, List, Optional

from studio.config import get_settings
from studio.schemas import AspectRatio, GenerationTarget, ImageReference, PipelineState
from studio.services.credential_store import CredentialStore
from studio.services.orchestrator import StudioOrchestrator


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate an image with the SHEN Studio pipeline")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--prompt", help="The prompt to generate from")
    source.add_argument(
        "--input",
        type=Path,
        help="Path to a JSON file with prompt, aspect_ratio and reference_images",
    )
    parser.add_argument(
        "--aspect-ratio",
        choices=[ratio.value for ratio in AspectRatio],
        help="Aspect ratio of the generated image (default 1:1)",
    )
    parser.add_argument(
        "--reference",
        type=Path,
        action="append",
        default=[],
        help="Reference image to attach; may be repeated",
    )
    parser.add_argument(
        "--api-key",
        help="API key to use instead of the stored credential or GEMINI_API_KEY",
    )
    parser.add_argument(
        "--engineer-only",
        action="store_true",
        help="Stop after prompt engineering and print the structured prompt",
    )
    parser.add_argument(
        "--target",
        choices=[target.value for target in GenerationTarget],
        default=GenerationTarget.IMAGE.value,
        help="Target model family for --engineer-only",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        help="Directory to write the text plates, engineered prompt and image",
    )
    return parser.parse_args(argv)


def load_configuration(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")
    with path.open("r", encoding="utf-8") as handle:
        payload = json.load(handle)
    if not isinstance(payload, dict):
        raise ValueError(f"Configuration must be a JSON object: {path}")
    return payload


def load_reference(path: Path) -> ImageReference:
    if not path.exists():
        raise FileNotFoundError(f"Reference image not found: {path}")
    mime_type = mimetypes.guess_type(path.name)[0] or "image/png"
    return ImageReference(name=path.name, mime_type=mime_type, data=path.read_bytes())


def resolve_job(args: argparse.Namespace) -> tuple[str, AspectRatio, list[Path]]:
    """Merge the JSON job (when given) with the command-line overrides."""

    config: Dict[str, Any] = load_configuration(args.input) if args.input else {}
    prompt = args.prompt if args.prompt is not None else str(config.get("prompt", ""))
    ratio = args.aspect_ratio or config.get("aspect_ratio") or AspectRatio.SQUARE.value

    base_dir = args.input.parent if args.input else Path.cwd()
    references = [base_dir / Path(item) for item in config.get("reference_images", [])]
    references.extend(args.reference)
    return prompt, AspectRatio(ratio), references


def build_orchestrator(api_key: Optional[str]) -> StudioOrchestrator:
    settings = get_settings()
    store = CredentialStore(settings.credentials_path)
    store.load()
    if api_key:
        store.use(api_key)
    return StudioOrchestrator(store, settings)


def export_plates(output_dir: Path, plates: List[ImageReference]) -> None:
    output_dir.mkdir(parents=True, exist_ok=True)
    for plate in plates:
        (output_dir / plate.name).write_bytes(plate.data)


def export_engineered(output_dir: Path, studio: StudioOrchestrator) -> None:
    output_dir.mkdir(parents=True, exist_ok=True)
    payload = {
        "quoted_prompt": studio.quoted_prompt,
        "engineered_prompt": studio.engineered.model_dump(mode="json") if studio.engineered else None,
    }
    (output_dir / "engineered_prompt.json").write_text(
        json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8"
    )


def export_outputs(output_dir: Path, studio: StudioOrchestrator) -> None:
    export_engineered(output_dir, studio)
    config = studio.last_config
    if config is not None:
        export_plates(output_dir, list(config.text_plates))
        if config.grounding_image is not None:
            (output_dir / config.grounding_image.name).write_bytes(config.grounding_image.data)
    if studio.result is not None:
        (output_dir / studio.result.name).write_bytes(studio.result.data)


async def run_engineer_only(
    studio: StudioOrchestrator,
    prompt: str,
    target: GenerationTarget,
    aspect_ratio: AspectRatio,
    references: List[ImageReference],
    output_dir: Optional[Path],
) -> int:
    outcome = await studio.engineer_only(prompt, target, aspect_ratio, references)
    studio.quoted_prompt = outcome.quoted_prompt
    studio.engineered = outcome.engineered

    print("=== Step 1 · Quoted prompt ===")
    print(outcome.quoted_prompt)
    print(f"\n=== Step 2 · Text plates ({len(outcome.text_plates)}) ===")
    for plate in outcome.text_plates:
        print(plate.name)
    print("\n=== Step 3 · Engineered prompt ===")
    print(json.dumps(outcome.engineered.model_dump(mode="json"), ensure_ascii=False, indent=2))

    if output_dir:
        export_engineered(output_dir, studio)
        export_plates(output_dir, outcome.text_plates)
        print(f"\nSaved outputs to: {output_dir.resolve()}")
    return 0


async def run_pipeline(
    studio: StudioOrchestrator,
    prompt: str,
    aspect_ratio: AspectRatio,
    references: List[ImageReference],
    output_dir: Optional[Path],
) -> int:
    state = await studio.generate(prompt, aspect_ratio, references)

    if studio.quoted_prompt is not None:
        print("=== Step 1 · Quoted prompt ===")
        print(studio.quoted_prompt)
    if studio.last_config is not None:
        config = studio.last_config
        print(f"\n=== Step 2 · Text plates ({len(config.text_plates)}) ===")
        for plate in config.text_plates:
            print(plate.name)
        print("\n=== Step 3 · Final prompt ===")
        print(config.prompt)
        print("\n=== Step 4 · Grounding ===")
        if config.grounding_image is not None:
            print(f"Reference: {studio.engineered.grounding_search_query}")
        else:
            print("Not needed")

    if output_dir:
        export_outputs(output_dir, studio)

    if state is PipelineState.SUCCESS and studio.result is not None:
        print("\n=== Step 5 · Image ===")
        print(f"Generated: {studio.result.name} ({studio.result.mime_type}, {len(studio.result.data)} bytes)")
        if output_dir:
            print(f"\nSaved outputs to: {output_dir.resolve()}")
        return 0

    if studio.credential_error:
        print(f"\nCredential problem: {studio.credential_error}")
        return 2
    print(f"\n{studio.error_message or 'Generation did not complete.'}")
    return 1


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    prompt, aspect_ratio, reference_paths = resolve_job(args)
    references = [load_reference(path) for path in reference_paths]

    studio = build_orchestrator(args.api_key)
    if not studio.credentials.is_configured:
        raise SystemExit("No API key configured. Pass --api-key or set GEMINI_API_KEY.")

    if args.engineer_only:
        if not prompt.strip():
            raise SystemExit("A prompt is required for prompt engineering.")
        code = asyncio.run(
            run_engineer_only(
                studio,
                prompt,
                GenerationTarget(args.target),
                aspect_ratio,
                references,
                args.output_dir,
            )
        )
    else:
        code = asyncio.run(run_pipeline(studio, prompt, aspect_ratio, references, args.output_dir))

    if code:
        raise SystemExit(code)


if __name__ == "__main__":
    main()
