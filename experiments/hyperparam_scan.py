"""
Hyperparameter scan for AdaBoost variants.

Performs grid search over boost type, ensemble size, trim rate and tree depth
and saves results.
"""

import sys
from itertools import product
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT / "src"))

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
from sklearn.datasets import load_breast_cancer
from sklearn.model_selection import train_test_split
from sklearn.preprocessing import StandardScaler
from sklearn.metrics import accuracy_score, roc_auc_score

from adaboost import BoostError, ClassificationTransform

OUTPUT_DIR = Path(__file__).resolve().parent

np.random.seed(42)


def prepare_classification_data():
    """Load and prepare breast cancer data."""
    print("Loading classification data...")
    data = load_breast_cancer()
    X, y = data.data, data.target

    X_train, X_test, y_train, y_test = train_test_split(
        X, y, test_size=0.2, random_state=42, stratify=y
    )

    scaler = StandardScaler()
    X_train = scaler.fit_transform(X_train)
    X_test = scaler.transform(X_test)

    return X_train, X_test, y_train, y_test


def classification_grid_search():
    """Grid search for classification."""
    print("\n" + "="*60)
    print("Hyperparameter Grid Search - AdaBoost")
    print("="*60)

    X_train, X_test, y_train, y_test = prepare_classification_data()

    # Define grid
    param_grid = {
        'boost_type': ['Discrete', 'Real', 'Gentle', 'Logit'],
        'weak_count': [25, 100, 200],
        'trim_rate': [0.9, 0.95, 1.0],
        'max_depth': [1, 2]
    }

    results = []
    total_combinations = np.prod([len(v) for v in param_grid.values()])

    print(f"\nTotal combinations: {total_combinations}")
    print("Running grid search...")

    combo_idx = 0
    for boost_type, weak_count, trim_rate, depth in product(
        param_grid['boost_type'],
        param_grid['weak_count'],
        param_grid['trim_rate'],
        param_grid['max_depth']
    ):
        combo_idx += 1
        print(f"\n[{combo_idx}/{total_combinations}] Testing: "
              f"type={boost_type}, weak_count={weak_count}, trim_rate={trim_rate}, depth={depth}")

        try:
            transform = ClassificationTransform(
                boost_type=boost_type,
                weak_count=weak_count,
                trim_rate=trim_rate,
                max_depth=depth,
                return_confidence=False
            )
            ensemble = transform.train(X_train, y_train)

            train_acc = accuracy_score(y_train, transform.predict_batch(X_train))
            test_acc = accuracy_score(y_test, transform.predict_batch(X_test))
            test_auc = roc_auc_score(y_test, ensemble.predict_proba(X_test))

            results.append({
                'boost_type': boost_type,
                'weak_count': weak_count,
                'trim_rate': trim_rate,
                'max_depth': depth,
                'rounds': len(ensemble),
                'train_acc': train_acc,
                'test_acc': test_acc,
                'test_auc': test_auc
            })

            print(f"  Rounds: {len(ensemble)}, Train Acc: {train_acc:.4f}, "
                  f"Test Acc: {test_acc:.4f}, AUC: {test_auc:.4f}")

        except BoostError as e:
            print(f"  Error: {e}")
            continue

    df_results = pd.DataFrame(results)
    df_results = df_results.sort_values('test_auc', ascending=False)

    # Save results
    output_path = OUTPUT_DIR / 'adaboost_grid_search.csv'
    df_results.to_csv(output_path, index=False)
    print(f"\nSaved results to: {output_path}")

    print("\n" + "="*60)
    print("Top 10 Configurations (by Test AUC)")
    print("="*60)
    print(df_results.head(10).to_string(index=False))

    return df_results


def plot_hyperparameter_effects(df_clf):
    """Create visualisations of hyperparameter effects."""
    print("\n" + "="*60)
    print("Creating Hyperparameter Effect Plots")
    print("="*60)

    hyperparams = ['weak_count', 'trim_rate', 'max_depth']
    fig, axes = plt.subplots(1, len(hyperparams), figsize=(18, 5))

    for idx, param in enumerate(hyperparams):
        ax = axes[idx]
        for boost_type, group in df_clf.groupby('boost_type'):
            grouped = group.groupby(param)['test_auc'].agg(['mean', 'std'])
            ax.errorbar(
                grouped.index, grouped['mean'], yerr=grouped['std'],
                marker='o', capsize=5, linewidth=2, markersize=8, label=boost_type
            )
        ax.set_xlabel(param)
        ax.set_ylabel('Test AUC')
        ax.set_title(f'{param} Effect')
        ax.legend()
        ax.grid(True, alpha=0.3)

    plt.tight_layout()
    plt.savefig(OUTPUT_DIR / 'adaboost_hyperparameter_effects.png', dpi=150)
    print("\nSaved plot: adaboost_hyperparameter_effects.png")


def main():
    """Run the hyperparameter scan."""
    df_clf = classification_grid_search()
    plot_hyperparameter_effects(df_clf)

    print("\n" + "="*60)
    print("Hyperparameter Scan Complete!")
    print("="*60)


if __name__ == "__main__":
    main()
