import numpy as np
from oc45py import OrdinalC45Classifier


def test_classifier_smoke():
    X = np.array([[1, 'A'], [2, 'A'], [3, 'B'], [4, 'B'], [5, 'C'], [6, 'C']], dtype=object)
    y = np.array(['low', 'low', 'mid', 'mid', 'high', 'high'])
    clf = OrdinalC45Classifier(categorical_features=[1], feature_names=['num', 'cat'],
                               classes=['low', 'mid', 'high'], min_samples_leaf=1)
    clf.fit(X, y)
    preds = clf.predict(X)
    assert preds.shape == y.shape
    assert set(preds) <= {'low', 'mid', 'high'}
    assert list(clf.classes_) == ['low', 'mid', 'high']
    _ = clf.export_text(class_names=['L', 'M', 'H'])


def test_classifier_smoke_numeric_labels():
    X = np.arange(0.05, 3.0, 0.1).reshape(-1, 1)
    y = np.digitize(X[:, 0], [1, 2])
    clf = OrdinalC45Classifier().fit(X, y)
    assert np.array_equal(clf.predict([[0.5], [1.5], [2.5]]), [0, 1, 2])
    assert clf.score(X, y) == 1.0
