"""
Run the end-to-end valorization workflow for a request file.

Usage:
    python scripts/run_valorization.py [request.yaml] [knowledge_base_dir] [output_dir]

Defaults to data/request.yaml, data/knowledge_base and a timestamped
directory under data/runs/.
"""

import sys
import shutil
from datetime import datetime
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from bioforge.errors import BioforgeError
from bioforge.loader import load_knowledge_base, load_valorization_request
from bioforge.pipeline import run_valorization


def main(argv=None) -> int:
    args = sys.argv[1:] if argv is None else argv
    data_root = Path(__file__).parent.parent / "data"

    request_path = Path(args[0]) if len(args) > 0 else data_root / "request.yaml"
    kb_path = Path(args[1]) if len(args) > 1 else data_root / "knowledge_base"
    if len(args) > 2:
        output_dir = Path(args[2])
    else:
        output_dir = data_root / "runs" / f"run_{datetime.now().strftime('%Y%m%d_%H%M%S')}"

    print("--- BioForge Valorization ---")

    try:
        request = load_valorization_request(request_path)
        kb = load_knowledge_base(kb_path)

        output_dir.mkdir(parents=True, exist_ok=True)
        # Keep the request next to its results
        shutil.copy(request_path, output_dir / "request.yaml")

        run_valorization(request, kb, output_dir)
    except BioforgeError as e:
        print(f"\n[FAIL] {e}")
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
