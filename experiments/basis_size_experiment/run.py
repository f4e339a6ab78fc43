#!/usr/bin/env python
from tqdm.auto import tqdm
import os, argparse, logging, yaml
import pandas as pd
from pathlib import Path


def parse_args(argv=None):
    p = argparse.ArgumentParser()
    p.add_argument(
        "--cpu",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Run on CPU (default) or, with --no-cpu, on the default JAX device.",
    )
    p.add_argument(
        "-c",
        "--config",
        type=str,
        default="experiment.yaml",
        help="Path to the YAML configuration file.",
    )
    p.add_argument(
        "-s",
        "--stem",
        type=str,
        default="basis_size",
        help="Base name (stem) for the output CSV and PDF saved to the results/ directory.",
    )
    return p.parse_args(argv)


def main(args):
    use_cpu = args.cpu  # Boolean True means use CPU (Default)
    config_path = args.config  # Path to experiment config file
    stem = args.stem  # Base name for outputs

    if use_cpu:
        os.environ["JAX_PLATFORM_NAME"] = "cpu"

        # Tell XLA/Eigen to multi-thread on CPU
        os.environ["XLA_FLAGS"] = "--xla_cpu_multi_thread_eigen=true intrasession=true"

    # jax reads the platform from the environment on import
    import jax
    from kernel_exp_family.registry import DISTRIBUTION_REGISTRY
    from kernel_exp_family.config import EstimatorConfig
    from kernel_exp_family.util import BasisSizeExperiment, plot_basis_size

    jax.config.update("jax_enable_x64", True)

    logging.basicConfig(level=logging.WARNING, format="%(asctime)s %(name)s %(levelname)s %(message)s")

    for device in jax.devices():
        print(device)

    # Load config file
    with open(config_path) as f:
        cfg = yaml.safe_load(f)

    REPLICATES = int(cfg["replicates"])  # number of independent training sets
    NUM_TRAIN = int(cfg["num_train"])  # training samples N
    NUM_TEST = int(cfg["num_test"])  # held out samples for the objective
    BASIS_SIZES = list(map(int, cfg["basis_sizes"]))  # Nyström basis sizes m
    INCLUDE_FULL = bool(cfg.get("include_full", True))

    dist = DISTRIBUTION_REGISTRY[cfg["dist"]](**cfg.get("dist_kwargs", {}))
    est_config = EstimatorConfig.from_dict({**cfg["estimator"], "estimator": "Full"})

    data_key = jax.random.key(int(cfg["data_key"]))

    # --------------- Fit and evaluate per replicate -----------------

    results = []
    rep_pbar = tqdm(range(REPLICATES), desc="Replicates", unit="rep")
    for rep in rep_pbar:
        data_key, train_key, test_key, basis_key = jax.random.split(data_key, 4)

        X_train = dist.sample(train_key, NUM_TRAIN)
        X_test = dist.sample(test_key, NUM_TEST)

        experiment = BasisSizeExperiment(dist, X_train, X_test, est_config)
        rows = experiment(basis_key, BASIS_SIZES, include_full=INCLUDE_FULL)
        results.extend({"replicate": rep, **row} for row in rows)

    # --------------- Save output -----------------

    outdir = Path("results")
    outdir.mkdir(exist_ok=True)
    result_df = pd.DataFrame(results)
    result_df.to_csv(outdir / f"{stem}.csv", index=False)
    print(f"Saved results/{stem}.csv")

    fig, _ = plot_basis_size(result_df, metric="objective", title=dist.name)
    fig.savefig(outdir / f"{stem}.pdf")
    print(f"Saved results/{stem}.pdf")


if __name__ == "__main__":
    main(parse_args())
