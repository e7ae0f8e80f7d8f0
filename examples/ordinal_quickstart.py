import numpy as np
from time import perf_counter
from oc45py import OrdinalC45Classifier

# Synthetic "service rating" data: a noisy score decides the rating band
rng = np.random.RandomState(42)
n_samples = 1000
wait = rng.gamma(2.0, 5.0, size=n_samples)
staff = rng.choice(["rude", "neutral", "friendly"], size=n_samples)
score = 10 - 0.3 * wait + np.select([staff == "rude", staff == "friendly"], [-3, 2], 0)
score += rng.randn(n_samples)
ratings = np.array(["poor", "fair", "good", "excellent"])
y = ratings[np.digitize(score, [2, 5, 8])]

X = np.column_stack([wait.astype(object), staff.astype(object)])
X[rng.rand(n_samples) < 0.05, 0] = None  # some missing waiting times
feats = ["wait", "staff"]

clf = OrdinalC45Classifier(
    min_samples_leaf=10, cf=0.25, random_state=42,
    classes=list(ratings),
    feature_names=feats, categorical_features=["staff"],
)

t0 = perf_counter(); clf.fit(X, y); print(f"fit: {perf_counter()-t0:.3f} s")
print(f"nodes={clf.get_n_nodes()} leaves={clf.get_n_leaves()} depth={clf.get_depth()}")
print(f"training accuracy: {clf.score(X, y):.3f}")
clf.print_tree()
try:
    clf.export_graphviz("rating_tree", format="dot")
except RuntimeError as e:
    print(f"Skipping Graphviz export: {e}")
