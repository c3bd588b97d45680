"""Desktop launcher for the packaged Laser ROI Calculator."""

from __future__ import annotations

import os
import pathlib
import sys


def _bundle_root() -> pathlib.Path:
    if getattr(sys, "frozen", False):
        return pathlib.Path(getattr(sys, "_MEIPASS"))
    return pathlib.Path(__file__).resolve().parent


def _runtime_root() -> pathlib.Path:
    if getattr(sys, "frozen", False):
        return pathlib.Path(sys.executable).resolve().parent
    return pathlib.Path(__file__).resolve().parent


def build_streamlit_argv(app_path: pathlib.Path) -> list[str]:
    return [
        "streamlit",
        "run",
        str(app_path),
        "--server.headless=false",
        "--browser.gatherUsageStats=false",
    ]


def main() -> None:
    runtime_root = _runtime_root()

    # The runtime log (.local_store) lives beside the executable unless overridden.
    os.chdir(runtime_root)
    os.environ.setdefault("LASER_ROI_STORAGE_ROOT", str(runtime_root / ".local_store"))
    os.environ.setdefault("STREAMLIT_BROWSER_GATHER_USAGE_STATS", "false")

    from streamlit.web import cli as stcli

    sys.argv = build_streamlit_argv(_bundle_root() / "app.py")
    raise SystemExit(stcli.main())


if __name__ == "__main__":
    main()
