"""
DEREN MAIN - Entry Point and CLI

Commands:
    init        - Create a project file (optionally seeded with demo content)
    run         - Run a terminal command against a project (mission or canvas)
    canvas      - Add a canvas page
    stats       - Show node/connection counts
    remove-node - Delete a node and its connections
    connect     - Connect two nodes (relates_to)
    clear       - Remove every node and connection
    tools       - List registered capabilities

Usage:
    # New project with the demo graph
    python main.py init --demo

    # Research mission; the generated batch replaces the previous one
    python main.py run "research artificial intelligence"

    # Canvas page (no mission)
    python main.py run "create canvas page"

    # Work on another project file
    python main.py -p notes/climate.json run "analyze climate change"

Configuration is read from config/deren.toml (override with DEREN_CONFIG).
"""
import sys
import asyncio
import logging
from pathlib import Path
from typing import Optional, List

# Add the project root to path for imports
sys.path.insert(0, str(Path(__file__).parent))


def _load_config(args):
    from infrastructure.config import load_config
    return load_config(Path(args.config) if args.config else None)


def _setup_logging(config) -> None:
    from infrastructure.logger import LoggerConfig, configure_logger

    logging.basicConfig(
        level=getattr(logging, config.logging.level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if config.logging.mutation_log:
        configure_logger(LoggerConfig(
            enable_file_log=True,
            log_path=Path(config.logging.log_dir),
        ))


def _project_path(args, config) -> Path:
    return Path(args.project or config.project.path)


def _open_db(path: Path):
    """Load the project into a fresh store. Exits if the file is missing or invalid."""
    from core.graph_db import MindMapDB
    from infrastructure.project_io import LoadFormatError

    db = MindMapDB()
    if not path.exists():
        print(f"No project at {path}. Run 'init' first.")
        sys.exit(1)
    try:
        db.load_project(path)
    except LoadFormatError as e:
        print(f"Cannot open project: {e}")
        sys.exit(1)
    return db


def _print_progress(event) -> None:
    marker = "!!" if event.failed else "->"
    print(f"  {marker} [{event.progress:5.1f}%] {event.message}")


def cmd_init(args):
    """Handle init command - write a new project file."""
    from core.demo import build_demo_graph
    from infrastructure.project_io import save_project

    config = _load_config(args)
    path = _project_path(args, config)

    if path.exists() and not args.force:
        print(f"Project already exists at {path} (use --force to overwrite)")
        return 1

    nodes, connections = build_demo_graph() if args.demo else ([], [])
    save_project(path, nodes, connections, title=args.title or config.project.title)
    print(f"Created {path} ({len(nodes)} nodes, {len(connections)} connections)")
    return 0


def cmd_run(args):
    """Handle run command - route one terminal command and save the result."""
    from agents.commands import CommandRouter
    from agents.orchestrator import MissionOrchestrator, MissionError
    from infrastructure.diagnostics import DiagnosticLogger

    config = _load_config(args)
    path = _project_path(args, config)
    db = _open_db(path)

    diagnostics = DiagnosticLogger(
        Path(config.logging.diagnostics_log) if config.logging.diagnostics_log else None
    )
    orchestrator = MissionOrchestrator(config=config.orchestrator, diagnostics=diagnostics)
    router = CommandRouter(db, orchestrator)

    print(f"> {args.text}")
    try:
        outcome = asyncio.run(router.handle(args.text, on_progress=_print_progress))
    except ValueError as e:
        print(f"Invalid command: {e}")
        return 1
    except MissionError as e:
        print(f"Mission failed: {e}")
        return 1

    db.save_project(path, title=config.project.title)

    if outcome.kind == "canvas":
        page = outcome.canvas_page
        print(f"Added canvas page {page.id} at ({page.position.x:.0f}, {page.position.y:.0f})")
    else:
        report = outcome.merge
        print(
            f"Merged {report.nodes_added} nodes and {report.connections_added} connections "
            f"(replaced {report.nodes_removed} nodes, {report.connections_removed} connections)"
        )
        if args.verbose:
            for task in router.history():
                print(f"  [{task.status.value:>9}] {task.type.value:<9} {task.description}")
            diagnostics.print_summary()
    return 0


def cmd_canvas(args):
    """Handle canvas command - add a canvas page without running a mission."""
    from agents.commands import CommandRouter
    from agents.orchestrator import MissionOrchestrator
    from core.schemas import Position

    config = _load_config(args)
    path = _project_path(args, config)
    db = _open_db(path)

    router = CommandRouter(db, MissionOrchestrator(config=config.orchestrator))
    position = Position(x=args.x, y=args.y) if args.x is not None and args.y is not None else None
    page = router.add_canvas_page(position)
    db.save_project(path, title=config.project.title)
    print(f"Added canvas page {page.id}")
    return 0


def cmd_stats(args):
    """Handle stats command."""
    config = _load_config(args)
    db = _open_db(_project_path(args, config))

    stats = db.stats()
    print(f"Nodes:       {stats['nodes']} ({stats['generated_nodes']} generated)")
    print(f"Connections: {stats['connections']} ({stats['generated_connections']} generated)")
    for node_type, count in sorted(stats["nodes_by_type"].items()):
        print(f"  {node_type:<10} {count}")
    return 0


def cmd_remove_node(args):
    """Handle remove-node command."""
    from core.graph_db import NodeNotFoundError

    config = _load_config(args)
    path = _project_path(args, config)
    db = _open_db(path)

    before = db.connection_count
    try:
        node = db.remove_node(args.node_id)
    except NodeNotFoundError as e:
        print(str(e))
        return 1
    db.save_project(path, title=config.project.title)
    print(f"Removed {node.label!r} and {before - db.connection_count} connection(s)")
    return 0


def cmd_connect(args):
    """Handle connect command."""
    from core.graph_db import GraphError

    config = _load_config(args)
    path = _project_path(args, config)
    db = _open_db(path)

    try:
        connection = db.connect(args.source, args.target)
    except (GraphError, ValueError) as e:
        print(f"Cannot connect: {e}")
        return 1
    db.save_project(path, title=config.project.title)
    print(f"Added {connection.id}")
    return 0


def cmd_clear(args):
    """Handle clear command - empty the project, keeping the file."""
    config = _load_config(args)
    path = _project_path(args, config)
    db = _open_db(path)

    nodes, connections = db.node_count, db.connection_count
    db.clear()
    db.save_project(path, title=config.project.title)
    print(f"Cleared {nodes} nodes and {connections} connections")
    return 0


def cmd_tools(args):
    """Handle tools command - list capability names."""
    from agents.tools import create_default_registry

    for name in create_default_registry().names():
        print(name)
    return 0


def build_parser():
    import argparse

    parser = argparse.ArgumentParser(
        description="DEREN - Research Mind Maps",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--project", "-p", help="Project file (default from config)")
    parser.add_argument("--config", help="Config file (default config/deren.toml)")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # init command
    init_parser = subparsers.add_parser("init", help="Create a project file")
    init_parser.add_argument("--demo", action="store_true", help="Seed with the demo graph")
    init_parser.add_argument("--title", help="Project title")
    init_parser.add_argument("--force", action="store_true", help="Overwrite an existing file")
    init_parser.set_defaults(func=cmd_init)

    # run command
    run_parser = subparsers.add_parser("run", help="Run a terminal command")
    run_parser.add_argument("text", help='Command text, e.g. "research quantum computing"')
    run_parser.add_argument("--verbose", "-v", action="store_true", help="Show tasks and phase timing")
    run_parser.set_defaults(func=cmd_run)

    # canvas command
    canvas_parser = subparsers.add_parser("canvas", help="Add a canvas page")
    canvas_parser.add_argument("--x", type=float, help="X position (random if omitted)")
    canvas_parser.add_argument("--y", type=float, help="Y position (random if omitted)")
    canvas_parser.set_defaults(func=cmd_canvas)

    # stats command
    stats_parser = subparsers.add_parser("stats", help="Show graph statistics")
    stats_parser.set_defaults(func=cmd_stats)

    # remove-node command
    remove_parser = subparsers.add_parser("remove-node", help="Delete a node and its connections")
    remove_parser.add_argument("node_id", help="Node id")
    remove_parser.set_defaults(func=cmd_remove_node)

    # connect command
    connect_parser = subparsers.add_parser("connect", help="Connect two nodes")
    connect_parser.add_argument("source", help="Source node id")
    connect_parser.add_argument("target", help="Target node id")
    connect_parser.set_defaults(func=cmd_connect)

    # clear command
    clear_parser = subparsers.add_parser("clear", help="Remove every node and connection")
    clear_parser.set_defaults(func=cmd_clear)

    # tools command
    tools_parser = subparsers.add_parser("tools", help="List capabilities")
    tools_parser.set_defaults(func=cmd_tools)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point with subcommands."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    _setup_logging(_load_config(args))
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
