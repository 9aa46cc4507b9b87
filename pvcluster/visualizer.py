"""
Visualization of clustering results.

This module contains the Visualizer class for plotting cluster size
distributions and how the centers moved over the clustering rounds.
"""

import logging
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns


class Visualizer:
    """Generate plots for a clustering run."""

    def __init__(self, result):
        self.result = result

    def plot_cluster_sizes(self, output_path: str):
        """Plot the number of sequences per cluster."""
        sizes = self.result.cluster_sizes()
        df = pd.DataFrame({"cluster": list(range(len(sizes))), "sequences": sizes})

        plt.figure(figsize=(max(6, len(sizes) * 0.4), 6))
        sns.barplot(data=df, x="cluster", y="sequences", color="steelblue")
        plt.xlabel("Cluster")
        plt.ylabel("Sequences")
        plt.title(f"Cluster Sizes ({len(self.result.assignments)} sequences)")
        plt.tight_layout()
        plt.savefig(output_path, dpi=300, bbox_inches="tight")
        plt.close()

        logging.info(f"Cluster size plot saved to {output_path}")

    def plot_round_history(self, output_path: str):
        """Plot center count and moved centers per round."""
        df = self.result.history_dataframe()
        if df.empty:
            logging.warning("No rounds recorded, skipping round history plot")
            return

        fig, ax = plt.subplots(figsize=(8, 5))
        sns.lineplot(data=df, x="round", y="num_centers", marker="o", ax=ax, label="Centers")
        sns.lineplot(data=df, x="round", y="centers_moved", marker="s", ax=ax, label="Centers moved")
        ax.set_xlabel("Round")
        ax.set_ylabel("Count")
        ax.set_xticks(df["round"].tolist())
        status = "converged" if self.result.converged else "stopped at round cap"
        ax.set_title(f"Clustering Rounds ({status})")
        ax.grid(True, alpha=0.3)
        fig.tight_layout()
        fig.savefig(output_path, dpi=300, bbox_inches="tight")
        plt.close(fig)

        logging.info(f"Round history plot saved to {output_path}")
