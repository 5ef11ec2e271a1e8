"""
Classification experiment on Breast Cancer dataset.

Compares Discrete, Real, Gentle and LogitBoost ensembles of decision stumps
against a single stump, and shows the effect of tree depth and of
cross-validated early stopping.
"""

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT / "src"))

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
from sklearn.datasets import load_breast_cancer
from sklearn.model_selection import train_test_split
from sklearn.preprocessing import StandardScaler
from sklearn.tree import DecisionTreeClassifier
from sklearn.metrics import accuracy_score, roc_auc_score, roc_curve, confusion_matrix

from adaboost import BoostType, ClassificationTransform
from adaboost.utils import compute_metrics_classification

OUTPUT_DIR = Path(__file__).resolve().parent

# Set style
plt.style.use('seaborn-v0_8-darkgrid')
np.random.seed(42)


def load_and_prepare_data():
    """Load Breast Cancer dataset and split."""
    print("Loading Breast Cancer dataset...")
    data = load_breast_cancer()
    X, y = data.data, data.target

    # Split 80/20
    X_train, X_test, y_train, y_test = train_test_split(
        X, y, test_size=0.2, random_state=42, stratify=y
    )

    # Standardise
    scaler = StandardScaler()
    X_train = scaler.fit_transform(X_train)
    X_test = scaler.transform(X_test)

    print(f"Train: {X_train.shape}, Test: {X_test.shape}")
    print(f"Class distribution - Train: {np.bincount(y_train)}, Test: {np.bincount(y_test)}")

    return X_train, X_test, y_train, y_test


def encoded(y):
    return np.where(y == 1, 1.0, -1.0)


def baseline_comparison(X_train, X_test, y_train, y_test):
    """Baseline: a single decision stump."""
    print("\n" + "="*60)
    print("Baseline: Single Decision Stump")
    print("="*60)

    stump = DecisionTreeClassifier(max_depth=1, random_state=42)
    stump.fit(X_train, y_train)

    train_acc = accuracy_score(y_train, stump.predict(X_train))
    test_acc = accuracy_score(y_test, stump.predict(X_test))
    test_auc = roc_auc_score(y_test, stump.predict_proba(X_test)[:, 1])

    print(f"Train Accuracy: {train_acc:.4f}")
    print(f"Test Accuracy:  {test_acc:.4f}")
    print(f"Test ROC AUC:   {test_auc:.4f}")

    return train_acc, test_acc, test_auc


def experiment_variants(X_train, X_test, y_train, y_test):
    """Experiment: staged test error of each boosting variant."""
    print("\n" + "="*60)
    print("Experiment 1: Boosting variants")
    print("="*60)

    results = []
    fig, axes = plt.subplots(1, 2, figsize=(14, 5))

    for boost_type in BoostType:
        print(f"\nFitting {boost_type.name} AdaBoost...")

        transform = ClassificationTransform(boost_type=boost_type, weak_count=200)
        ensemble = transform.train(X_train, y_train)

        test_scores = ensemble.decision_function(X_test)
        metrics = compute_metrics_classification(encoded(y_test), test_scores)
        staged_error = [
            compute_metrics_classification(encoded(y_test), F)["error"]
            for F in ensemble.staged_decision_function(X_test)
        ]

        print(f"Rounds:        {len(ensemble)} ({transform.engine_.termination.name})")
        print(f"Test Accuracy: {metrics['accuracy']:.4f}")
        print(f"Test ROC AUC:  {metrics['roc_auc']:.4f}")

        results.append({
            'boost_type': boost_type.name,
            'rounds': len(ensemble),
            'train_error': transform.engine_.train_scores_[-1],
            'test_acc': metrics['accuracy'],
            'test_auc': metrics['roc_auc']
        })

        axes[0].plot(transform.engine_.train_scores_, label=boost_type.name, linewidth=2)
        axes[1].plot(staged_error, label=boost_type.name, linewidth=2)

    for ax, title in zip(axes, ['Training Error', 'Test Error']):
        ax.set_xlabel('Round')
        ax.set_ylabel('Misclassification Rate')
        ax.set_title(title)
        ax.legend()
        ax.grid(True, alpha=0.3)

    plt.tight_layout()
    plt.savefig(OUTPUT_DIR / 'boost_variants_error.png', dpi=150)
    print("\nSaved plot: boost_variants_error.png")

    return pd.DataFrame(results)


def experiment_max_depth(X_train, X_test, y_train, y_test):
    """Experiment: effect of weak learner depth."""
    print("\n" + "="*60)
    print("Experiment 2: Effect of max_depth")
    print("="*60)

    max_depths = [1, 2, 3]
    results = []

    fig, ax = plt.subplots(figsize=(10, 6))

    for depth in max_depths:
        print(f"\nFitting with max_depth={depth}...")

        transform = ClassificationTransform(boost_type="Real", weak_count=100, max_depth=depth)
        ensemble = transform.train(X_train, y_train)

        metrics = compute_metrics_classification(encoded(y_test), ensemble.decision_function(X_test))
        print(f"Test Accuracy: {metrics['accuracy']:.4f}")
        print(f"Test ROC AUC:  {metrics['roc_auc']:.4f}")

        results.append({
            'max_depth': depth,
            'rounds': len(ensemble),
            'test_acc': metrics['accuracy'],
            'test_auc': metrics['roc_auc']
        })

        ax.plot(transform.engine_.errors_, label=f'depth={depth}', linewidth=2)

    ax.set_xlabel('Round')
    ax.set_ylabel('Weighted Error of Weak Learner')
    ax.set_title('Effect of Tree Depth on Weak Learner Error')
    ax.legend()
    ax.grid(True, alpha=0.3)

    plt.tight_layout()
    plt.savefig(OUTPUT_DIR / 'boost_max_depth.png', dpi=150)
    print("\nSaved plot: boost_max_depth.png")

    return pd.DataFrame(results)


def experiment_early_stopping(X_train, X_test, y_train, y_test):
    """Experiment: cross-validated choice of the number of rounds."""
    print("\n" + "="*60)
    print("Experiment 3: Cross-validated early stopping")
    print("="*60)

    transform = ClassificationTransform(
        boost_type="Gentle", weak_count=150, folds=5, random_state=42
    )
    ensemble = transform.train(X_train, y_train)
    cv_scores = transform.engine_.cv_scores_

    metrics = compute_metrics_classification(encoded(y_test), ensemble.decision_function(X_test))
    print(f"Rounds chosen: {len(ensemble)}/{transform.config.weak_count}")
    print(f"Test Accuracy: {metrics['accuracy']:.4f}")

    fig, ax = plt.subplots(figsize=(10, 6))
    ax.plot(cv_scores, linewidth=2, label='Mean held-out error')
    ax.axvline(len(ensemble) - 1, color='k', linestyle='--', linewidth=1, label='Chosen')
    ax.set_xlabel('Round')
    ax.set_ylabel('Misclassification Rate')
    ax.set_title('5-fold Cross-Validation Error (Gentle AdaBoost)')
    ax.legend()
    ax.grid(True, alpha=0.3)

    plt.tight_layout()
    plt.savefig(OUTPUT_DIR / 'boost_early_stopping.png', dpi=150)
    print("\nSaved plot: boost_early_stopping.png")

    return len(ensemble), metrics['accuracy']


def final_model_and_summary(X_train, X_test, y_train, y_test):
    """Train final model and plot its ROC curve."""
    print("\n" + "="*60)
    print("Final Model")
    print("="*60)

    transform = ClassificationTransform(boost_type="Real", weak_count=200, return_confidence=False)
    ensemble = transform.train(X_train, y_train)

    test_proba = ensemble.predict_proba(X_test)
    test_pred = transform.predict_batch(X_test)
    test_acc = accuracy_score(y_test, test_pred)
    test_auc = roc_auc_score(y_test, test_proba)

    print(f"\nFinal Test Accuracy: {test_acc:.4f}")
    print(f"Final Test ROC AUC:  {test_auc:.4f}")

    # Confusion matrix
    cm = confusion_matrix(y_test, test_pred)
    print(f"\nConfusion Matrix:")
    print(cm)

    fpr, tpr, _ = roc_curve(y_test, test_proba)

    fig, ax = plt.subplots(figsize=(8, 6))
    ax.plot(fpr, tpr, linewidth=2, label=f'Real AdaBoost (AUC = {test_auc:.4f})')
    ax.plot([0, 1], [0, 1], 'k--', linewidth=1, label='Random')
    ax.set_xlabel('False Positive Rate')
    ax.set_ylabel('True Positive Rate')
    ax.set_title('ROC Curve - Final Model')
    ax.legend()
    ax.grid(True, alpha=0.3)

    plt.tight_layout()
    plt.savefig(OUTPUT_DIR / 'boost_final_roc.png', dpi=150)
    print("\nSaved plot: boost_final_roc.png")

    model_path = transform.save(OUTPUT_DIR / 'boost_final_model.joblib')
    print(f"Saved model: {model_path.name}")

    return test_acc, test_auc


def main():
    """Run all classification experiments."""
    print("="*60)
    print("AdaBoost Classification Experiments")
    print("Breast Cancer Dataset")
    print("="*60)

    X_train, X_test, y_train, y_test = load_and_prepare_data()

    baseline_comparison(X_train, X_test, y_train, y_test)

    results_variants = experiment_variants(X_train, X_test, y_train, y_test)
    results_depth = experiment_max_depth(X_train, X_test, y_train, y_test)
    experiment_early_stopping(X_train, X_test, y_train, y_test)

    results_variants.to_csv(OUTPUT_DIR / 'boost_variants_results.csv', index=False)
    results_depth.to_csv(OUTPUT_DIR / 'boost_max_depth_results.csv', index=False)

    print("\n" + "="*60)
    print("Results Summary")
    print("="*60)
    print("\nBoosting variants:")
    print(results_variants.to_string(index=False))
    print("\nEffect of max_depth:")
    print(results_depth.to_string(index=False))

    final_model_and_summary(X_train, X_test, y_train, y_test)

    print("\n" + "="*60)
    print("Classification Experiments Complete!")
    print("="*60)


if __name__ == "__main__":
    main()
