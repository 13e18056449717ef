from pathlib import Path

from dotenv import load_dotenv


def load_env(env_path: Path | None = None) -> bool:
    """Load .env from the project root if present.

    Existing environment variables win over values in the file.
    """
    path = env_path or (Path.cwd() / ".env")
    if not path.exists():
        return False
    return load_dotenv(dotenv_path=path, override=False)
