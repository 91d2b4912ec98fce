"""
Rulette CLI - Command-line interface for the engine.

Usage:
    rulette serve [--host H] [--port P]    Run the HTTP API with uvicorn
    rulette demo [--players N] [--seed S]  Play a scripted local game
    rulette config                         Show the effective engine config
"""

import argparse
import asyncio
import dataclasses
import sys


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Rulette - Party game session engine",
        prog="rulette",
    )
    parser.add_argument("--log-level", help="Log level (default: $RULETTE_LOG_LEVEL or INFO)")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address")
    serve_parser.add_argument("--port", type=int, default=8000, help="Bind port")
    serve_parser.add_argument("--reload", action="store_true", help="Reload on code changes")

    # Demo command
    demo_parser = subparsers.add_parser("demo", help="Play a scripted local game")
    demo_parser.add_argument("--players", type=int, default=4, help="Number of players (2-6)")
    demo_parser.add_argument("--rounds", type=int, default=3, help="Rounds before the game ends")
    demo_parser.add_argument("--seed", type=int, default=None, help="Random seed")

    # Config command
    subparsers.add_parser("config", help="Show the effective engine config")

    args = parser.parse_args(argv)

    from .config import configure_logging
    configure_logging(args.log_level)

    if args.command == "serve":
        cmd_serve(args)
    elif args.command == "demo":
        cmd_demo(args)
    elif args.command == "config":
        cmd_config(args)
    else:
        parser.print_help()
        sys.exit(1)


def cmd_serve(args):
    """Run the API server."""
    try:
        import uvicorn
    except ImportError:
        print("Error: uvicorn not installed. Install with: pip install uvicorn")
        sys.exit(1)

    uvicorn.run(
        "rulette.api.app:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        reload=args.reload,
    )


def cmd_config(args):
    """Print the engine config built from the environment."""
    from .config import EngineConfig

    config = EngineConfig.from_env()
    for name, value in dataclasses.asdict(config).items():
        print(f"{name:36} {value}")


def cmd_demo(args):
    """Play a scripted game and print the results."""
    if not 2 <= args.players <= 6:
        print("Error: --players must be between 2 and 6")
        sys.exit(1)
    if args.rounds < 1:
        print("Error: --rounds must be at least 1")
        sys.exit(1)
    results = asyncio.run(run_demo(args.players, args.rounds, args.seed))

    print(f"\nGame over: {results['end_condition']}")
    print(f"Turns played: {results['turns_played']}")
    print(f"Points transferred: {results['total_points_transferred']}")
    print("\nStandings:")
    for standing in results["final_standings"]:
        print(f"  {standing['display_name']:12} {standing['points']:3}")
    print(f"\nWinner(s): {', '.join(results['winners'])}")


DEMO_RULES = [
    ("Speak only in questions", "Answer every question with a question"),
    ("No saying 'yes'", "No saying 'no'"),
    ("Cannot clone cards", "Clap before speaking"),
    ("Point with your elbow", "Point with your nose"),
]

DEMO_NAMES = ["Alice", "Bob", "Carol", "Dave", "Erin", "Frank"]


async def run_demo(num_players: int, rounds: int, seed=None) -> dict:
    """
    Scripted game: every turn the current player spins and draws a rule
    card, then a random non-referee player calls them out and the referee
    rules the callout valid on even turns.
    """
    from .config import EngineConfig
    from .engine_core import Card, CardType, SessionStatus, build_rng
    from .session import GameManager

    config = EngineConfig(
        callout_cooldown_seconds=0,
        referee_decision_cooldown_seconds=0,
        max_callouts_per_window=1000,
        max_turns=rounds,
    )
    manager = GameManager(config=config, rng=build_rng(seed=seed))
    rng = build_rng(seed=seed)

    session = await manager.create_session("p1", DEMO_NAMES[0])
    for index in range(1, num_players):
        await manager.join_session(session.shareable_code, f"p{index + 1}", DEMO_NAMES[index])
    started = await manager.start_game(session.session_id, "p1")
    print(f"Session {session.shareable_code}: referee is {started.data['referee']}")

    step = 0
    while session.status == SessionStatus.IN_PROGRESS:
        step += 1
        current = manager.get_current_player(session.session_id)
        await manager.spin(session.session_id, current)
        front, back = rng.choice(DEMO_RULES)
        drawn = await manager.draw_card(
            session.session_id, current, Card.create(CardType.RULE, front, back)
        )
        if drawn.data.get("active_rule"):
            print(f"{current} drew: {front}")

        callers = [
            pid for pid in session.players
            if pid not in (current, session.referee)
        ]
        if callers and current != session.referee:
            caller = rng.choice(callers)
            callout = await manager.initiate_callout(session.session_id, caller, current, front)
            if callout.success:
                ruling = await manager.adjudicate_callout(
                    session.session_id, session.referee, step % 2 == 0
                )
                print(f"  {caller} called out {current}: {ruling.data.get('decision')}")

        await manager.next_turn(session.session_id)

    return session.results.to_dict()


if __name__ == "__main__":
    main()
