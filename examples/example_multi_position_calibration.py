"""Multi-position accelerometer calibration from a raw sample stream.

Simulates an accelerometer with bias, scale factor and cross-coupling errors
that is held still in a sequence of known attitudes and moved by hand in
between. The stream is then calibrated end to end:

1. Static interval detection learns the noise floor and splits the stream
   into static and dynamic intervals.
2. Each static interval becomes one measurement (average reading + std),
   paired with the known attitude of that pose.
3. A few measurements are paired with a wrong attitude on purpose, to show
   how the robust calibrator rejects them.
4. Robust calibration (RANSAC, MSAC, LMedS, PROSAC or PROMedS) estimates the
   bias b and the matrix M of the model f_meas = b + (I + M) · f_true.

Usage:
    python examples/example_multi_position_calibration.py --method msac --outliers 2
"""

import argparse
from pathlib import Path
from typing import Dict, List

import matplotlib.pyplot as plt
import numpy as np
from tqdm import tqdm

from inertial.calibration import (
    AccelerationTriadStaticIntervalDetector,
    RobustCalibratorListener,
    StaticIntervalMeasurementsGenerator,
    Status,
    TriadFixer,
    create_accelerometer_calibrator,
)
from inertial.calibration.parameters import BIAS_NAMES, MATRIX_NAMES, mm_to_parameters
from inertial.coords import Frame
from inertial.estimators import RobustEstimatorMethod, quality_scores_from_std
from inertial.sensors import gravity_magnitude

LATITUDE = np.deg2rad(22.3)  # Hong Kong
HEIGHT = 50.0


def generate_multi_position_stream(
    n_poses: int = 15,
    rate: float = 50.0,
    initial_static: float = 12.0,
    static_duration: float = 6.0,
    dynamic_duration: float = 2.0,
    noise_std: float = 0.01,
    rng: np.random.Generator = None,
) -> Dict:
    """Generate raw accelerometer samples for a multi-position test.

    Args:
        n_poses: Number of static poses (the first one is the initial
            static period).
        rate: Sampling rate in Hz.
        initial_static: Duration of the first pose in seconds.
        static_duration: Duration of every other pose in seconds.
        dynamic_duration: Duration of each movement between poses.
        noise_std: Accelerometer white noise std in m/s².
        rng: Random generator.

    Returns:
        Dictionary with 'samples' (N, 3), 'frames' (one per pose),
        'true_bias' (3,), 'true_mm' (3, 3) and 'time_interval'.
    """
    if rng is None:
        rng = np.random.default_rng()

    true_bias = np.array([0.08, -0.05, 0.12])  # m/s²
    true_mm = np.array([
        [0.012, 0.003, -0.002],
        [0.001, -0.008, 0.004],
        [-0.003, 0.002, 0.015],
    ])

    g = gravity_magnitude(LATITUDE, HEIGHT)
    frames: List[Frame] = []
    segments = []
    f_prev = None
    for k in range(n_poses):
        roll, yaw = rng.uniform(-np.pi, np.pi, size=2)
        pitch = rng.uniform(-np.pi / 2, np.pi / 2)
        frame = Frame.from_euler(roll, pitch, yaw, latitude=LATITUDE, height=HEIGHT)
        frames.append(frame)
        f_true = frame.nav_to_body(np.array([0.0, 0.0, -g]))

        if f_prev is not None:
            # Hand movement: blend between poses with large vibration
            n_dyn = int(dynamic_duration * rate)
            alpha = np.linspace(0.0, 1.0, n_dyn)[:, None]
            motion = (1 - alpha) * f_prev + alpha * f_true
            motion += rng.normal(0.0, 2.0, size=(n_dyn, 3))
            segments.append(motion)

        duration = initial_static if k == 0 else static_duration
        segments.append(np.tile(f_true, (int(duration * rate), 1)))
        f_prev = f_true

    # Final movement closes the last static interval
    n_dyn = int(dynamic_duration * rate)
    segments.append(f_prev + rng.normal(0.0, 2.0, size=(n_dyn, 3)))

    f_true_stream = np.vstack(segments)
    samples = true_bias + f_true_stream @ (np.eye(3) + true_mm).T
    samples += rng.normal(0.0, noise_std, size=samples.shape)

    return {
        'samples': samples,
        'frames': frames,
        'true_bias': true_bias,
        'true_mm': true_mm,
        'time_interval': 1.0 / rate,
    }


class ProgressBarListener(RobustCalibratorListener):
    """Show consensus progress with a tqdm bar."""

    def __init__(self):
        self.bar = None

    def on_calibrate_start(self, calibrator):
        self.bar = tqdm(total=100, desc=f"{calibrator.method.name} calibration", unit="%")

    def on_calibrate_progress_change(self, calibrator, progress):
        self.bar.update(int(round(progress * 100)) - self.bar.n)

    def on_calibrate_end(self, calibrator):
        self.bar.update(100 - self.bar.n)
        self.bar.close()


def plot_calibration(data: Dict, statuses: np.ndarray, corrected: np.ndarray, save_path: str = None):
    """Plot raw stream with detected intervals and corrected gravity norm.

    Args:
        data: Stream dictionary
        statuses: Detector status per sample
        corrected: Corrected samples (N, 3)
        save_path: Path to save figure
    """
    t = np.arange(len(data['samples'])) * data['time_interval']
    fig, axes = plt.subplots(2, 1, figsize=(14, 8), sharex=True)

    ax = axes[0]
    for i, axis in enumerate(['X', 'Y', 'Z']):
        ax.plot(t, data['samples'][:, i], label=f'Accel {axis}', linewidth=0.6)
    static = np.array([s is Status.STATIC_INTERVAL for s in statuses])
    ax.fill_between(t, 0, 1, where=static, color='g', alpha=0.15,
                    transform=ax.get_xaxis_transform(), label='Static interval')
    ax.set_ylabel('Specific force [m/s²]')
    ax.set_title('Raw Accelerometer Stream and Detected Static Intervals')
    ax.legend(ncol=4)
    ax.grid(True, alpha=0.3)

    ax = axes[1]
    g = gravity_magnitude(LATITUDE, HEIGHT)
    ax.plot(t, np.linalg.norm(data['samples'], axis=1) - g, 'r-', linewidth=0.6, label='Raw')
    ax.plot(t, np.linalg.norm(corrected, axis=1) - g, 'b-', linewidth=0.6, label='Calibrated')
    ax.set_ylim(-0.5, 0.5)
    ax.set_xlabel('Time [s]')
    ax.set_ylabel('‖f‖ - g [m/s²]')
    ax.set_title('Specific Force Norm Error')
    ax.legend()
    ax.grid(True, alpha=0.3)

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        print(f"Saved figure: {save_path}")

    plt.show()


def main():
    """Main entry point for the multi-position calibration example."""
    parser = argparse.ArgumentParser(
        description="Multi-position accelerometer calibration with outlier rejection"
    )
    parser.add_argument(
        "--method",
        choices=[m.value for m in RobustEstimatorMethod],
        default=RobustEstimatorMethod.LMEDS.value,
        help="Robust estimation method"
    )
    parser.add_argument("--poses", type=int, default=15, help="Number of static poses")
    parser.add_argument("--outliers", type=int, default=2, help="Poses paired with a wrong attitude")
    parser.add_argument("--common-axis", action="store_true", help="Use common axis model")
    parser.add_argument("--no-plot", action="store_true", help="Skip plotting")
    parser.add_argument("--seed", type=int, default=42, help="Random seed")

    args = parser.parse_args()
    rng = np.random.default_rng(args.seed)

    print("\n" + "=" * 70)
    print("Multi-Position Accelerometer Calibration")
    print("=" * 70)

    data = generate_multi_position_stream(n_poses=args.poses, rng=rng)
    print(f"  Samples: {len(data['samples'])}")
    print(f"  Poses: {len(data['frames'])}")

    detector = AccelerationTriadStaticIntervalDetector(
        window_size=51,
        initial_static_samples=500,
        threshold_factor=3.0,
        time_interval=data['time_interval'],
    )
    generator = StaticIntervalMeasurementsGenerator(detector)

    statuses = []
    for sample in tqdm(data['samples'], desc="Detecting static intervals", unit="sample"):
        generator.process(sample)
        statuses.append(generator.status)

    print(f"\n  Base noise level: {detector.base_noise_level:.5f} m/s²")
    print(f"  Threshold: {detector.threshold:.5f} m/s²")
    print(f"  Static intervals found: {len(generator.samples)}")
    if len(generator.samples) != len(data['frames']):
        print("  Detected intervals do not match the number of poses; try another seed")
        return

    frames = list(data['frames'])
    wrong = rng.choice(len(frames), size=min(args.outliers, len(frames)), replace=False)
    for k in wrong:
        frames[k] = Frame.from_euler(*rng.uniform(-np.pi / 2, np.pi / 2, size=3),
                                     latitude=LATITUDE, height=HEIGHT)
    print(f"  Poses paired with a wrong attitude: {sorted(wrong.tolist())}")

    measurements = generator.measurements(frames)
    method = RobustEstimatorMethod(args.method)
    scores = quality_scores_from_std([np.linalg.norm(m.std_values) for m in measurements])
    calibrator = create_accelerometer_calibrator(
        method,
        measurements=measurements,
        quality_scores=scores,
        common_axis_used=args.common_axis,
        listener=ProgressBarListener(),
        rng=rng,
    )
    result = calibrator.calibrate()

    print("\n" + "=" * 70)
    print("Calibration Results")
    print("=" * 70)
    print(f"{'Parameter':<20} {'Estimated':>15} {'True':>15} {'Error':>12}")
    print("-" * 70)
    true_parameters = np.concatenate((data['true_bias'], mm_to_parameters(data['true_mm'])))
    for name, est, true in zip(BIAS_NAMES + MATRIX_NAMES, result.parameters, true_parameters):
        print(f"{name:<20} {est:>15.5f} {true:>15.5f} {abs(est - true):>12.2e}")
    print("-" * 70)
    inliers = calibrator.inliers_data
    print(f"Inliers: {inliers.num_inliers}/{len(measurements)} "
          f"(threshold {inliers.inlier_threshold:.2e} m/s²)")
    rejected = np.flatnonzero(~inliers.inliers).tolist()
    print(f"Rejected poses: {rejected}")
    if result.chi_sq_probability is not None:
        print(f"MSE: {result.mse:.3e}  chi²: {result.chi_sq:.2f}  "
              f"P(chi²): {result.chi_sq_probability:.3f}")
    print("=" * 70)

    if not args.no_plot:
        corrected = TriadFixer.from_result(result).fix(data['samples'])
        save_path = "examples/figs/multi_position_calibration.svg"
        Path(save_path).parent.mkdir(parents=True, exist_ok=True)
        plot_calibration(data, np.array(statuses, dtype=object), corrected, save_path=save_path)


if __name__ == '__main__':
    main()
