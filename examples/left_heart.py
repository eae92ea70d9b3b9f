# # Four chamber circulation

# In this example we step the time-varying elastance model for a number of beats
# and look at the left ventricular pressure volume loop, the pressures on the
# left side of the heart and the synthetic ECG.

from cardiosim import Simulator
import matplotlib.pyplot as plt

circulation = Simulator(parameters={"HR": 75.0})

circulation.print_info()

history = circulation.solve(num_beats=10)
circulation.print_info()

metrics = circulation.metrics()
print(
    f"SV = {metrics.SV:.1f} mL, EF = {metrics.EF:.1f} %, CO = {metrics.CO:.2f} L/min, "
    f"MAP = {metrics.MAP:.1f} mmHg, LV EDP = {metrics.LV_EDP:.1f} mmHg"
)

N = circulation.steps_per_beat

fig, ax = plt.subplots(1, 2, sharex=True, sharey=True, figsize=(10, 5))
ax[0].plot(history["V_LV"], history["p_LV"])
ax[0].set_xlabel("V [mL]")
ax[0].set_ylabel("p [mmHg]")
ax[0].set_title("All beats")
ax[1].plot(history["V_LV"][-N:], history["p_LV"][-N:])
ax[1].set_title("Last beat")
ax[1].set_xlabel("V [mL]")


fig, ax = plt.subplots(3, 1, sharex=True, figsize=(10, 8))
ax[0].plot(history["time"], history["p_LV"], label="p_LV")
ax[0].plot(history["time"], history["p_LA"], label="p_LA")
ax[0].plot(history["time"], history["p_AR_SYS"], label="p_AR_SYS")
ax[0].plot(history["time"], history["p_AR_PUL"], label="p_AR_PUL")
ax[0].set_ylabel("p [mmHg]")
ax[0].legend()

ax[1].plot(history["time"], history["Q_MV"], label="Q_MV")
ax[1].plot(history["time"], history["Q_AV"], label="Q_AV")
ax[1].set_ylabel("Q [mL/s]")
ax[1].legend()

ax[2].plot(history["time"], history["ecg"], color="k")
ax[2].set_ylabel("ECG [mV]")
ax[2].set_xlabel("Time [s]")

plt.show()
