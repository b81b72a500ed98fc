"""Run the bucketdrop server with uvicorn."""

import uvicorn

from bucketdrop.core.config import get_settings


def main() -> None:
    uvicorn.run("bucketdrop.main:app", host="0.0.0.0", port=get_settings().port)


if __name__ == "__main__":
    main()
