import pandas as pd
import numpy as np

def generate_mock_trip(output_file="mock_trip.csv", fix_interval_ms=1000, seed=None):
    """
    Generates a realistic GPS trace for one bus run, designed to exercise the
    movement classifier: driving legs with noisy fixes, dwell periods at stops
    where the receiver only jitters, and a final stop.
    """
    rng = np.random.default_rng(seed)

    # Accra, Ghana (same area the demo map is centred on)
    START_LAT, START_LON = 5.6037, -0.1870
    STOP_LAT, STOP_LON = 5.6060, -0.1850

    # (phase, duration in fixes, target point or None for dwell)
    legs = [
        ("moving", 12, (5.6048, -0.1862)),
        ("dwell", 9, None),
        ("moving", 12, (STOP_LAT, STOP_LON)),
        ("dwell", 8, None),
    ]

    rows = []
    lat, lon = START_LAT, START_LON
    timestamp_ms = 0

    for phase, fixes, target in legs:
        if target is not None:
            # evenly spaced steps towards the target, ~1e-4 deg per fix (~11 m/s)
            lats = np.linspace(lat, target[0], fixes + 1)[1:]
            lons = np.linspace(lon, target[1], fixes + 1)[1:]
        else:
            lats = np.full(fixes, lat)
            lons = np.full(fixes, lon)

        for step_lat, step_lon in zip(lats, lons):
            timestamp_ms += fix_interval_ms
            # receiver noise ~1 m, well under the 5e-5 deg movement threshold
            noisy_lat = step_lat + rng.normal(0, 5e-6)
            noisy_lon = step_lon + rng.normal(0, 5e-6)
            rows.append({
                "timestamp_ms": timestamp_ms,
                "lat": np.round(noisy_lat, 7),
                "lon": np.round(noisy_lon, 7),
                "phase": phase,
            })

        lat, lon = lats[-1], lons[-1]

    df = pd.DataFrame(rows)
    df.to_csv(output_file, index=False)
    print(f"✅ Generated {len(df)} fixes over {timestamp_ms / 1000:.0f}s and saved to '{output_file}'")

    print("\nFixes per phase:")
    for phase, count in df["phase"].value_counts().items():
        print(f"  {phase}: {count}")

    return df

if __name__ == "__main__":
    generate_mock_trip(seed=42)
