# # Valve disease

# Aortic stenosis makes the ventricle work against the Gorlin relation of a
# small orifice, and mitral regurgitation lets blood flow back into the atrium
# during systole. Here we compare both with the healthy baseline.

from cardiosim import Simulator, valves
import matplotlib.pyplot as plt

scenarios = {
    "Healthy": {},
    "Aortic stenosis": {"valves": {"AV": {"stenosis": True, "stenosis_area": 0.8}}},
    "Mitral regurgitation": {"valves": {"MV": {"regurgitation": True, "EROA": 0.4}}},
}

fig, ax = plt.subplots(1, 2, figsize=(12, 5))

for name, parameters in scenarios.items():
    circulation = Simulator(parameters=parameters)
    history = circulation.solve(num_beats=10)
    metrics = circulation.metrics()
    print(f"{name}: SV = {metrics.SV:.1f} mL, p_LA max = {metrics.p_LA_max:.1f} mmHg")

    N = circulation.steps_per_beat
    ax[0].plot(history["V_LV"][-N:], history["p_LV"][-N:], label=name)
    ax[1].plot(history["time"][-N:], history["p_LA"][-N:], label=name)

    AV = circulation.parameters["valves"]["AV"]
    print(f"  gradient needed for 250 mL/s across the AV: {valves.required_gradient(250.0, AV):.1f} mmHg")

ax[0].set_xlabel("V_LV [mL]")
ax[0].set_ylabel("p_LV [mmHg]")
ax[0].legend()
ax[1].set_xlabel("Time [s]")
ax[1].set_ylabel("p_LA [mmHg]")
ax[1].legend()

plt.show()
