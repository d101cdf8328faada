from __future__ import annotations

import os

import uvicorn


def main() -> None:
    uvicorn.run(
        "mealtracker.api:app",
        host=os.environ.get("MEALTRACKER_HOST", "127.0.0.1"),
        port=int(os.environ.get("MEALTRACKER_PORT") or "8000"),
    )


if __name__ == "__main__":
    main()
