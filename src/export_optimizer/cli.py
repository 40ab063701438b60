"""CLI for export-optimizer."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress
from rich.table import Table

from export_optimizer.analysis import analyze_geometry
from export_optimizer.errors import OptimizerError
from export_optimizer.lod import LODChain
from export_optimizer.pipeline import ExportPipeline
from export_optimizer.schema import ScenePayload, load_scene, save_scene
from export_optimizer.settings import OptimizationSettings
from export_optimizer.textures import FileTextureLoader, InMemoryTextureLoader, write_image
from export_optimizer.uv_mapper import uv_problem

app = typer.Typer(
    name="export-optimize",
    help="Prepare mesh scenes for game-engine export",
    add_completion=False,
)
console = Console()


@app.callback()
def setup(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _load(source: Path) -> ScenePayload:
    if not source.exists():
        console.print(f"[red]Error:[/red] File not found: {source}")
        raise typer.Exit(1)
    try:
        return load_scene(source)
    except ValidationError as e:
        console.print(f"[red]Error:[/red] Invalid scene file {source}\n{e}")
        raise typer.Exit(1)


@app.command()
def analyze(
    source: Path = typer.Argument(..., help="Scene JSON file"),
) -> None:
    """Classify every mesh and recommend a UV method."""
    scene = _load(source)

    table = Table(title=f"Analysis: {source.name}")
    table.add_column("Mesh", style="cyan")
    table.add_column("Type")
    table.add_column("Orientation")
    table.add_column("Size (w x h x d)")
    table.add_column("Complexity")
    table.add_column("Area")
    table.add_column("UV method")
    table.add_column("UVs")

    for position, mesh in enumerate(scene.to_meshes()):
        name = mesh.name or f"mesh_{position}"
        try:
            mesh.validate()
            analysis = analyze_geometry(mesh)
        except OptimizerError as e:
            table.add_row(name, "[red]error[/red]", "-", "-", "-", "-", "-", str(e))
            continue
        width, height, depth = analysis.dimensions
        table.add_row(
            name,
            analysis.type.value,
            analysis.orientation.value,
            f"{width:.2f} x {height:.2f} x {depth:.2f}",
            f"{analysis.complexity:.2f}",
            f"{analysis.surface_area:.2f}",
            analysis.recommended_method.value,
            uv_problem(mesh, OptimizationSettings().uv_regenerate_below) or "ok",
        )

    console.print(table)


@app.command()
def optimize(
    source: Path = typer.Argument(..., help="Scene JSON file"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Optimized scene file"),
    atlas_out: Optional[Path] = typer.Option(None, "--atlas-out", help="Write the atlas as an image instead of inlining it"),
    quality: str = typer.Option("medium", "--quality", "-q", help="high, medium or low"),
    engine: Optional[str] = typer.Option(None, "--engine", "-e", help="unity, unreal or godot preset"),
    ratio: Optional[float] = typer.Option(None, "--ratio", "-r", help="Fraction of triangles to drop (0-1)"),
    no_atlas: bool = typer.Option(False, "--no-atlas", help="Skip texture atlasing"),
    no_merge: bool = typer.Option(False, "--no-merge", help="Skip mesh merging"),
    tangents: bool = typer.Option(False, "--tangents", help="Generate tangents"),
    lods: bool = typer.Option(False, "--lods", help="Generate LOD chains"),
) -> None:
    """Run the export pipeline over a scene."""
    scene = _load(source)

    overrides = {}
    if ratio is not None:
        overrides["poly_reduction"] = ratio
    if no_atlas:
        overrides["texture_atlasing"] = False
    if no_merge:
        overrides["mesh_merging"] = False
    if tangents:
        overrides["generate_tangents"] = True
    if lods:
        overrides["generate_lods"] = True

    try:
        if engine:
            settings = OptimizationSettings.for_engine(engine, **overrides)
        else:
            settings = OptimizationSettings.for_quality(quality, **overrides)
        if scene.textures:
            loader = InMemoryTextureLoader(scene.to_textures())
        else:
            loader = FileTextureLoader(source.parent)
        pipeline = ExportPipeline(settings, texture_loader=loader)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    with Progress(console=console) as progress:
        task = progress.add_task("Optimizing...", total=None)

        def on_progress(current, total):
            progress.update(task, total=total, completed=current)

        try:
            result = pipeline.optimize(scene.to_meshes(), on_progress=on_progress)
        except OptimizerError as e:
            console.print(f"[red]✗ Optimization failed:[/red] {e}")
            raise typer.Exit(1)

    report = result.report
    table = Table(title="Stages")
    table.add_column("Stage", style="cyan")
    table.add_column("Before")
    table.add_column("After")
    table.add_column("Improvement")
    for stage in report.stages:
        table.add_row(stage.stage, f"{stage.before:,}", f"{stage.after:,}", f"{stage.improvement:.1f}%")
    console.print(table)

    before, after = report.original_stats, report.optimized_stats
    console.print(f"  Vertices: {before.vertices:,} → {after.vertices:,}")
    console.print(f"  Triangles: {before.triangles:,} → {after.triangles:,}")
    console.print(f"  Draw calls: {before.draw_calls:,} → {after.draw_calls:,}")

    for issue in report.issues:
        colour = "red" if issue.severity.value == "error" else "yellow"
        where = f"{issue.mesh}: " if issue.mesh else ""
        console.print(f"  [{colour}]{issue.severity.value}[/{colour}] [{issue.stage}] {where}{issue.message}")

    console.print(f"[green]✓ {report.summary()}[/green]")

    if output:
        meshes = list(result.meshes)
        for chain in result.lods.values():
            meshes.extend(lod.mesh for lod in chain[1:])
        textures = {}
        if result.atlas is not None:
            if atlas_out:
                write_image(result.atlas, atlas_out)
                console.print(f"  Atlas: {atlas_out}")
            else:
                textures[result.atlas_texture_id] = result.atlas
        save_scene(ScenePayload.from_meshes(meshes, textures), output)
        console.print(f"  Output: {output}")


@app.command("lod-chain")
def lod_chain(
    source: Path = typer.Argument(..., help="Scene JSON file"),
    mesh_name: str = typer.Option(..., "--mesh", "-m", help="Name of the mesh to reduce"),
    ratios: Optional[str] = typer.Option(
        None, "--ratios", "-r",
        help="Comma-separated fractions of triangles kept (e.g., 1,0.5,0.1)",
    ),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Scene file with every level"),
) -> None:
    """Generate an LOD chain for one mesh."""
    scene = _load(source)
    matches = [m for m in scene.to_meshes() if m.name == mesh_name]
    if not matches:
        console.print(f"[red]Error:[/red] No mesh named '{mesh_name}'")
        raise typer.Exit(1)

    try:
        ratio_list = [float(r.strip()) for r in ratios.split(",")] if ratios else None
        chain = LODChain(matches[0], ratio_list)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    with Progress(console=console) as progress:
        task = progress.add_task("Generating LODs...", total=None)

        def on_progress(current, total):
            progress.update(task, total=total, completed=current)

        results = chain.generate(on_progress=on_progress)

    table = Table(title="LOD Chain Results")
    table.add_column("Level", style="cyan")
    table.add_column("Triangles")
    table.add_column("Kept")
    table.add_column("Vertices")
    for lod in results:
        table.add_row(
            f"LOD{lod.level}",
            f"{lod.triangle_count:,}",
            f"{lod.reduction_ratio:.1%}",
            f"{lod.mesh.vertex_count:,}",
        )
    console.print(table)

    if output:
        save_scene(ScenePayload.from_meshes([lod.mesh for lod in results]), output)
        console.print(f"  Output: {output}")


@app.command("serve")
def serve(
    host: str = typer.Option("0.0.0.0", "--host", "-h"),
    port: int = typer.Option(8000, "--port", "-p"),
) -> None:
    """Start the REST API server."""
    from export_optimizer.api import run_server

    console.print(f"[green]Starting API server at http://{host}:{port}[/green]")
    run_server(host=host, port=port)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
