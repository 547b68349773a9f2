"""
Runs the API locally against the test database with auto-reload.

Usage:
    python scripts/run_server.py
"""
import uvicorn
import os
from pathlib import Path

# Set TEST_MODE to True BEFORE anything else is imported
os.environ['TEST_MODE'] = 'True'

PROJECT_ROOT = Path(__file__).resolve().parent.parent

print("--- Running with LOCAL TEST DATABASE ---")

if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5000))
    src_path = str(PROJECT_ROOT / "src")

    uvicorn.run(
        "clinic_booking_backend.main:app",
        host="127.0.0.1",
        port=port,
        reload=True,
        reload_dirs=[src_path],
        app_dir=src_path
    )
