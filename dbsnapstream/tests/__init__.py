# -*- coding: utf-8 -*-

import subprocess
from pathlib import Path

dir_project_root = Path(__file__).absolute().parent.parent.parent
dir_htmlcov = dir_project_root / "htmlcov"


def run_cov_test(
    script: str,
    module: str,
    preview: bool = False,
    is_folder: bool = False,
):
    """
    Run one test script (or the folder of it) with coverage report on the
    given module, e.g. ``run_cov_test(__file__, "dbsnapstream.loader")``.
    """
    if is_folder:
        target = str(Path(script).parent)
    else:
        target = script
    args = [
        "pytest",
        "-s",
        "--tb=native",
        f"--rootdir={dir_project_root}",
        f"--cov={module}",
        "--cov-report",
        "term-missing",
        "--cov-report",
        f"html:{dir_htmlcov}",
        target,
    ]
    subprocess.run(args, cwd=str(dir_project_root), check=False)
    if preview:  # pragma: no cover
        import webbrowser

        webbrowser.open((dir_htmlcov / "index.html").as_uri())
