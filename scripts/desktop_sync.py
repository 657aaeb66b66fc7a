"""
Desktop sync from the command line.
Run: python scripts/desktop_sync.py {sync,upload,download,reset,status} [--server URL] [--token TOKEN] [--db URL]
"""
import argparse
import logging
import sys

from dawacare.desktop.sync_client import SyncClient, SyncError, init_local_db

logger = logging.getLogger("desktop_sync")


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    parser = argparse.ArgumentParser(description="Synchronize the local DawaCare store with the cloud")
    parser.add_argument("command", choices=["sync", "upload", "download", "reset", "status"])
    parser.add_argument("--server", help="Sync server URL (default: SYNC_SERVER_URL)")
    parser.add_argument("--token", help="Access token (default: SYNC_TOKEN)")
    parser.add_argument("--db", help="Local database URL (default: LOCAL_DATABASE_URL)")
    parser.add_argument("--branch", help="Only download medicines for this branch id")
    args = parser.parse_args()

    client = SyncClient(
        session_factory=init_local_db(args.db),
        server_url=args.server,
        token=args.token,
        branch_id=args.branch,
    )
    try:
        if args.command == "reset":
            client.reset()
            result = "cursor cleared"
        else:
            result = getattr(client, args.command)()
    except SyncError as e:
        logger.error("Sync failed: %s", e)
        return 1
    logger.info("%s: %s", args.command, result)
    return 0


if __name__ == "__main__":
    sys.exit(main())
