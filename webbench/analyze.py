# webbench/analyze.py
# Summarize a per-request CSV written by `webbench -o run.csv`.
import os
import sys

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402
import pandas as pd  # noqa: E402

REQUIRED = ("ts", "latency_ms", "status")


def load(csv_path: str) -> pd.DataFrame:
    df = pd.read_csv(csv_path)
    df.columns = [c.strip() for c in df.columns]
    missing = [c for c in REQUIRED if c not in df.columns]
    if missing:
        raise ValueError(f"CSV missing columns {missing}. Columns: {df.columns.tolist()}")
    return df


def summarize(csv_path: str) -> dict:
    df = load(csv_path)
    total = len(df)
    out = {
        "total": total,
        "errors": int((df["status"] != 200).sum()),
        "status_counts": {int(k): int(v) for k, v in df["status"].value_counts().sort_index().items()},
        "duration_s": None,
        "throughput": None,
    }
    if total == 0:
        return out

    lat = df["latency_ms"]
    out.update({
        "latency_mean": float(lat.mean()),
        "latency_median": float(lat.median()),
        "latency_p90": float(lat.quantile(0.9)),
        "latency_max": float(lat.max()),
    })
    duration_s = (df["ts"].max() - df["ts"].min()) / 1000.0
    if duration_s > 0:
        out["duration_s"] = duration_s
        out["throughput"] = total / duration_s
    return out


def plot(csv_path: str, out_png: str) -> str:
    df = load(csv_path)
    plt.figure(figsize=(11, 5))

    plt.subplot(1, 2, 1)
    plt.hist(df["latency_ms"].dropna(), bins=40)
    plt.title("Latency histogram (ms)")
    plt.xlabel("milliseconds")
    plt.ylabel("count")

    plt.subplot(1, 2, 2)
    counts = df["status"].value_counts().sort_index()
    plt.bar([str(c) for c in counts.index], counts.values)
    plt.title("Responses by status")

    plt.tight_layout()
    os.makedirs(os.path.dirname(out_png) or ".", exist_ok=True)
    plt.savefig(out_png)
    plt.close()
    return out_png


def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    if not argv:
        print("Usage: python -m webbench.analyze run.csv [summary.png]")
        return 1
    csv_path = argv[0]
    if not os.path.exists(csv_path):
        print("File not found:", csv_path)
        return 2

    s = summarize(csv_path)
    print("=== run summary ===")
    print("Total requests:", s["total"])
    print("Errors (status != 200):", s["errors"])
    if s["duration_s"]:
        print(f"Duration (s): {s['duration_s']:.2f}")
        print(f"Observed throughput (req/s): {s['throughput']:.2f}")
    if s["total"]:
        print(f"Latency ms: avg={s['latency_mean']:.1f} med={s['latency_median']:.1f} "
              f"p90={s['latency_p90']:.1f} max={s['latency_max']:.1f}")
    print("Status codes:", s["status_counts"])

    out = argv[1] if len(argv) > 1 else "analysis/summary.png"
    plot(csv_path, out)
    print("\nSaved chart to", out)
    return 0


if __name__ == "__main__":
    sys.exit(main())
