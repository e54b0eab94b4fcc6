"""CLI script to copy the study document from one storage backend to another.

Usage: python scripts/copy_study_data.py --from file --to mongo [--clear-source]

Backend settings (DATA_FILE, MONGODB_URI, SQLITE_URL, ...) come from the
same environment variables the server reads; only STORAGE_BACKEND is
overridden per side.
"""
import sys
import argparse
import pathlib
# Ensure `backend/` is on sys.path so `studydata` imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from studydata.config import BACKENDS, Settings
from studydata.errors import StudyDataError
from studydata.repositories import build_repository


def _repository_for(backend: str):
    settings = Settings()
    settings.STORAGE_BACKEND = backend
    settings._validate()
    repo = build_repository(settings)
    repo.connect()
    return repo


def main(source: str, target: str, clear_source: bool = False) -> int:
    """Read the document from `source` and write it unchanged to `target`.

    Returns a process exit code; storage errors are printed rather than
    raised so the script gives a one-line diagnosis.
    """
    if source == target:
        print('Source and target backends must differ')
        return 2
    try:
        src = _repository_for(source)
    except (RuntimeError, StudyDataError) as e:
        print(f'Could not open {source} storage: {e}')
        return 1
    try:
        dst = _repository_for(target)
    except (RuntimeError, StudyDataError) as e:
        src.close()
        print(f'Could not open {target} storage: {e}')
        return 1
    try:
        if not src.exists():
            # an absent source reads as the empty state; never copy that over real data
            print(f'No study data stored in {source}; nothing copied')
            return 1
        doc = src.read()
        dst.write(doc)
        guide = doc.get('activeGuide', {})
        print(f"Copied study data {source} -> {target}: "
              f"{len(guide.get('processedVideos', []))} videos, "
              f"{len(guide.get('quizHistory', []))} quiz results, "
              f"{len(doc.get('archivedGuides', []))} archived guides")
        if clear_source:
            src.clear()
            print(f'Cleared {source}')
    except StudyDataError as e:
        print(f'Copy failed: {e.detail}')
        return 1
    finally:
        src.close()
        dst.close()
    return 0


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('--from', dest='source', choices=BACKENDS, required=True, help='Backend to read from')
    parser.add_argument('--to', dest='target', choices=BACKENDS, required=True, help='Backend to write to')
    parser.add_argument('--clear-source', action='store_true', help='Delete the document from the source after copying')
    args = parser.parse_args()
    sys.exit(main(args.source, args.target, clear_source=args.clear_source))
