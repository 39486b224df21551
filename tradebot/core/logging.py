from datetime import datetime, timezone

def log(msg: str, level: str = "INFO"):
    ts = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S%z")
    print(f"[{ts}] {level.upper():<5} {msg}", flush=True)
