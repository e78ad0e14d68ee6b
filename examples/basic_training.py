import numpy as np
from tapegrad import grad_and_value, tensor

# Generate synthetic data
np.random.seed(42)
X = np.random.randn(100, 2)  # 100 samples, 2 features
y = 2 * X[:, 0] - 3 * X[:, 1] + 1 + np.random.randn(100) * 0.1  # y = 2x1 - 3x2 + 1 + noise

X_tensor = tensor(X)
y_tensor = tensor(y.reshape(-1, 1))


def loss_fn(weight, bias):
    y_pred = X_tensor @ weight + bias
    diff = y_pred - y_tensor
    return (diff * diff).mean()


loss_and_grads = grad_and_value(loss_fn, argnums=(0, 1))

weight = tensor(np.random.randn(2, 1) * 0.1)
bias = tensor(np.zeros(1))
lr = 0.1

# Training loop
epochs = 100
for epoch in range(epochs):
    (d_weight, d_bias), loss = loss_and_grads(weight, bias)
    weight = tensor(weight.data - lr * d_weight.data)
    bias = tensor(bias.data - lr * d_bias.data)

    if epoch % 10 == 0:
        print(f"Epoch {epoch}, Loss: {loss.item():.4f}")

# Test the model
test_X = np.array([[1.0, 2.0]])
prediction = tensor(test_X) @ weight + bias
print(f"\nTest prediction for input {test_X}:")
print(f"Predicted value: {prediction.item():.4f}")
print(f"Learned weight: {weight.tolist()}, bias: {bias.tolist()}")
