"""
Campaign Assigner - Development Runner

    python run.py              start the API with auto-reload
    python run.py batch        process one batch to the end, in-process
    python run.py batch --dry-run
    python run.py parallel     one channel-scoped batch per channel
"""
import asyncio
import subprocess
import sys
import os
import signal

PROJECT_DIR = os.path.dirname(os.path.abspath(__file__))
os.chdir(PROJECT_DIR)

processes = []


def run_backend():
    """Start FastAPI backend"""
    print("Starting Backend FastAPI on port 8000...")
    return subprocess.Popen(
        [sys.executable, "-m", "uvicorn", "backend.app.main:app", "--host", "0.0.0.0", "--port", "8000", "--reload"],
        cwd=PROJECT_DIR,
        env={**os.environ, "PYTHONPATH": PROJECT_DIR}
    )


def cleanup(signum=None, frame=None):
    """Clean up processes on exit"""
    print("\nShutting down...")
    for p in processes:
        try:
            p.terminate()
            p.wait(timeout=5)
        except Exception:
            p.kill()
    print("Done.")
    sys.exit(0)


async def run_batch(dry_run: bool):
    """Run chunks of the current batch until nothing is left"""
    from backend.app.api.dependencies import get_orchestrator
    from backend.app.integrations.supabase import get_supabase_client
    from backend.app.models import RunOptions

    orchestrator = get_orchestrator(await get_supabase_client())
    options = RunOptions(dry_run=dry_run)

    while True:
        result = await orchestrator.run(options)
        stats = result.stats
        print(f"[{result.batch_id}] {result.status.value}: "
              f"{stats.processed}/{stats.total_candidates} processed, "
              f"{stats.added} added, {stats.skipped} skipped, {stats.errors} errors")
        if result.message:
            print(f"  {result.message}")
        if not result.has_more_to_process or result.error:
            return
        options = options.model_copy(update={"resume_batch_id": result.batch_id})


async def run_parallel(dry_run: bool):
    from backend.app.api.dependencies import get_orchestrator
    from backend.app.integrations.supabase import get_supabase_client
    from backend.app.models import RunOptions

    orchestrator = get_orchestrator(await get_supabase_client())
    result = await orchestrator.run_parallel(RunOptions(dry_run=dry_run))

    print(result.message or "")
    for channel in result.channels:
        print(f"  {channel.platform_name}: {channel.candidates} candidates, "
              f"{channel.added} added, status={channel.status.value if channel.status else '-'}"
              + (f", error={channel.error}" if channel.error else ""))


def serve():
    print("=" * 50)
    print("  CAMPAIGN ASSIGNER")
    print("  Selection -> Personalization -> Instantly")
    print("=" * 50)

    signal.signal(signal.SIGINT, cleanup)
    signal.signal(signal.SIGTERM, cleanup)

    backend = run_backend()
    processes.append(backend)

    print("\nBackend API: http://localhost:8000")
    print("API Docs: http://localhost:8000/docs")
    print("Cron trigger: POST http://localhost:8000/api/cron/campaign-assignment")
    print("\nPress Ctrl+C to stop...\n")

    try:
        backend.wait()
        print("Backend stopped.")
    except KeyboardInterrupt:
        pass
    finally:
        cleanup()


def main():
    args = sys.argv[1:]
    command = args[0] if args else "serve"
    dry_run = "--dry-run" in args

    if command == "serve":
        serve()
    elif command in ("batch", "parallel"):
        from backend.app.logging_config import setup_logging
        setup_logging()
        runner = run_batch if command == "batch" else run_parallel
        asyncio.run(runner(dry_run))
    else:
        print(__doc__)
        sys.exit(2)


if __name__ == "__main__":
    main()
